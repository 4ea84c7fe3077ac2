from __future__ import annotations

import json
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterable

from dotenv import load_dotenv

from query_guard import MutationPolicy

ADMIN_SECRET_HEADER = "x-hasura-admin-secret"
DEFAULT_TIMEOUT_S = 30.0
DEFAULT_TRANSPORT = "stdio"
DEFAULT_LOG_LEVEL = "INFO"
_REPO_ROOT = Path(__file__).resolve().parent.parent
ENV_PATHS = [Path.cwd() / ".env", _REPO_ROOT / ".env"]
for _path in ENV_PATHS:
    if _path.exists():
        load_dotenv(_path, override=False)


@dataclass(frozen=True)
class ServerConfig:
    endpoint: str
    admin_secret: str | None = None
    headers: dict[str, str] = field(default_factory=dict)
    timeout_s: float = DEFAULT_TIMEOUT_S
    mutation_policy: MutationPolicy = MutationPolicy.READ_ONLY

    def resolved_headers(self) -> dict[str, str]:
        headers = dict(self.headers)
        has_secret_header = any(key.lower() == ADMIN_SECRET_HEADER for key in headers)
        if self.admin_secret and not has_secret_header:
            headers[ADMIN_SECRET_HEADER] = self.admin_secret
        return headers


def parse_headers(raw_headers: str | Iterable[str] | None, *, source: str = "--header") -> dict[str, str]:
    """
    Parse request headers into a dict.

    A string is read as a JSON object (the HASURA_GRAPHQL_HEADERS form); any
    other iterable holds repeated `Name: Value` strings (the --header form).
    `source` names the origin in error messages.
    """
    if not raw_headers:
        return {}

    if isinstance(raw_headers, str):
        try:
            parsed = json.loads(raw_headers)
        except json.JSONDecodeError as exc:
            raise ValueError(f"{source} must be valid JSON") from exc
        if not isinstance(parsed, dict):
            raise ValueError(f"{source} must be a JSON object")
        pairs = [(str(key), str(val), f"{key!r}") for key, val in parsed.items()]
    else:
        pairs = []
        for raw in raw_headers:
            if ":" not in raw:
                raise ValueError(f"Invalid header (expected 'Name: Value'): {raw}")
            name, value = raw.split(":", 1)
            pairs.append((name, value.strip(), raw))

    headers: dict[str, str] = {}
    for name, value, raw in pairs:
        name = name.strip()
        if not name:
            raise ValueError(f"Invalid header name in {source}: {raw}")
        headers[name] = value
    return headers


def parse_flag_headers(argv: list[str]) -> dict[str, str]:
    """
    Treat leftover `--name=value` / `--name value` arguments as request headers.

    This lets callers pass arbitrary headers, e.g. `--x-hasura-role=viewer`.
    A flag with no value is rejected.
    """
    headers: dict[str, str] = {}
    idx = 0
    while idx < len(argv):
        current = argv[idx]
        if not current.startswith("--") or len(current) <= 2:
            raise ValueError(f"Unexpected argument: {current}")
        trimmed = current[2:]
        if "=" in trimmed:
            name, value = trimmed.split("=", 1)
            if not name:
                raise ValueError(f"Invalid header name in: {current}")
            headers[name] = value
            idx += 1
        elif idx + 1 < len(argv) and not argv[idx + 1].startswith("--"):
            headers[trimmed] = argv[idx + 1]
            idx += 2
        else:
            raise ValueError(f"Missing value for header argument: {current}")
    return headers


def load_server_config(
    *,
    endpoint: str | None = None,
    admin_secret: str | None = None,
    headers: dict[str, str] | None = None,
    timeout_s: float | str | None = None,
    mutation_policy: str | MutationPolicy | None = None,
) -> ServerConfig:
    """Build the server config from explicit values, falling back to the environment."""
    endpoint = (endpoint or os.environ.get("HASURA_GRAPHQL_ENDPOINT") or "").strip()
    if not endpoint:
        raise ValueError("Missing HASURA_GRAPHQL_ENDPOINT. Provide the env var or pass --endpoint.")

    secret = (
        admin_secret
        or os.environ.get("HASURA_GRAPHQL_SECRET")
        or os.environ.get("HASURA_GRAPHQL_ADMIN_SECRET")
        or None
    )

    merged_headers = parse_headers(
        os.environ.get("HASURA_GRAPHQL_HEADERS"), source="HASURA_GRAPHQL_HEADERS"
    )
    merged_headers.update(headers or {})

    timeout_value = timeout_s if timeout_s is not None else os.environ.get("HASURA_GRAPHQL_TIMEOUT_S")
    if timeout_value in (None, ""):
        timeout_value = DEFAULT_TIMEOUT_S
    try:
        resolved_timeout = float(timeout_value)
    except (TypeError, ValueError) as exc:
        raise ValueError("Invalid HASURA_GRAPHQL_TIMEOUT_S value") from exc
    if resolved_timeout <= 0:
        raise ValueError("HASURA_GRAPHQL_TIMEOUT_S must be positive")

    policy = mutation_policy or os.environ.get("HASURA_MCP_MUTATIONS") or MutationPolicy.READ_ONLY
    if not isinstance(policy, MutationPolicy):
        policy = MutationPolicy.parse(policy)

    return ServerConfig(
        endpoint=endpoint,
        admin_secret=secret,
        headers=merged_headers,
        timeout_s=resolved_timeout,
        mutation_policy=policy,
    )
