from __future__ import annotations

import asyncio
import json
import logging

import aiohttp
from graphql import get_introspection_query

from config import ServerConfig
from introspection import IntrospectionSchema

logger = logging.getLogger("hasura-mcp")


class GraphQLClientError(RuntimeError):
    """The endpoint could not be reached or answered with something other than GraphQL JSON."""


class GraphQLRequestError(GraphQLClientError):
    """The endpoint answered with a GraphQL `errors` list."""

    def __init__(self, message: str, errors: list[dict] | None = None):
        super().__init__(message)
        self.errors = errors or []


def _format_errors(errors: list) -> str:
    messages = []
    for err in errors:
        if isinstance(err, dict):
            messages.append(str(err.get("message") or json.dumps(err)))
        else:
            messages.append(str(err))
    return "; ".join(messages)


class GraphQLClient:
    def __init__(self, *, config: ServerConfig):
        self._config = config
        self.endpoint = config.endpoint
        self._headers = config.resolved_headers()

    async def request(self, query: str, variables: dict | None = None) -> dict:
        """Run a GraphQL operation and return its `data`, raising on GraphQL errors."""
        payload: dict = {"query": query, "variables": variables or {}}
        result = await self._post_json(payload)

        errors = result.get("errors")
        if errors:
            raise GraphQLRequestError(_format_errors(errors), errors=errors)
        data = result.get("data")
        if data is None:
            raise GraphQLClientError("GraphQL response missing 'data'.")
        return data

    async def fetch_schema(self) -> IntrospectionSchema:
        data = await self.request(get_introspection_query(descriptions=True))
        schema = data.get("__schema")
        if not schema:
            raise GraphQLClientError("Introspection response missing '__schema'.")
        return schema

    async def get_text(self, url: str) -> tuple[int, str]:
        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.get(url) as resp:
                    return resp.status, await resp.text()
        except asyncio.TimeoutError as exc:
            raise GraphQLClientError(f"GET {url} timed out after {self._config.timeout_s}s") from exc

    async def _post_json(self, payload: dict) -> dict:
        headers = {"Accept": "application/json", "Content-Type": "application/json"}
        headers.update(self._headers)

        timeout = aiohttp.ClientTimeout(total=self._config.timeout_s)
        try:
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.endpoint, json=payload, headers=headers) as resp:
                    text = await resp.text()
                    status = resp.status
        except asyncio.TimeoutError as exc:
            raise GraphQLClientError(
                f"GraphQL request timed out after {self._config.timeout_s}s"
            ) from exc

        parsed = None
        if text:
            try:
                parsed = json.loads(text)
            except json.JSONDecodeError:
                parsed = None

        # Error statuses still carry a usable `errors` list on most servers.
        if isinstance(parsed, dict) and (status < 400 or "errors" in parsed or "data" in parsed):
            return parsed
        if status >= 400:
            logger.debug("GraphQL endpoint returned %s: %s", status, text)
            raise GraphQLClientError(f"GraphQL request failed ({status}): {text.strip()}")
        if not text:
            return {}
        raise GraphQLClientError("GraphQL response was not valid JSON")
