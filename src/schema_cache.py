from __future__ import annotations

import asyncio
import logging
from typing import Awaitable, Callable

from introspection import IntrospectionSchema

logger = logging.getLogger("hasura-mcp")


class SchemaCache:
    """
    Holds the introspected schema for the lifetime of the process.

    The first `get()` fetches; concurrent callers wait on the same lock and
    reuse the result. A failed fetch leaves the cache empty for the next call.
    """

    def __init__(self, fetch: Callable[[], Awaitable[IntrospectionSchema]]):
        self._fetch = fetch
        self._schema: IntrospectionSchema | None = None
        self._lock = asyncio.Lock()

    def peek(self) -> IntrospectionSchema | None:
        return self._schema

    async def get(self) -> IntrospectionSchema:
        if self._schema is not None:
            return self._schema
        async with self._lock:
            if self._schema is None:
                logger.info("Fetching introspection schema...")
                schema = await self._fetch()
                logger.info("Cached schema with %s types.", len(schema.get("types") or []))
                self._schema = schema
        return self._schema
