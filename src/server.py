"""
Hasura MCP server exposing a GraphQL endpoint's tables and data as MCP tools.

What it does:
- Introspects the endpoint once and caches the schema for the process lifetime.
- `list_tables` / `describe_table` recover tables from the naming convention of
  generated schemas (helper types such as `<table>_aggregate` or `<table>_bool_exp`
  are filtered out).
- `list_root_fields` / `describe_graphql_type` describe the raw schema.
- `preview_table_data` selects every scalar/enum column of a table with a limit;
  `aggregate_data` queries `<table>_aggregate`.
- `run_graphql_query` runs free-form queries but refuses mutations. With the
  `separate-tool` mutation policy a `run_graphql_mutation` tool is registered
  that only accepts mutations.

Every tool returns text: JSON on success, or a message naming the failure.
Errors never reach the transport.

Resources:
- `hasura://schema` is the introspection result as JSON.
- `hasura://schema.graphql` is the same schema printed as SDL.
"""

import argparse
import functools
import json
import logging
import os
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Literal, Optional

from mcp.server.fastmcp import FastMCP
from pydantic import AnyHttpUrl

from config import (
    DEFAULT_LOG_LEVEL,
    DEFAULT_TIMEOUT_S,
    DEFAULT_TRANSPORT,
    ServerConfig,
    load_server_config,
    parse_flag_headers,
    parse_headers,
)
from graphql_client import GraphQLClient
from introspection import (
    IntrospectionSchema,
    TypeRef,
    get_root_fields,
    get_type_by_name,
    is_scalar_or_enum,
    list_table_names,
    resolve_table_type,
    to_sdl,
    to_type_string,
    unwrap_type,
)
from query_guard import (
    MUTATION_REJECTED_MESSAGE,
    MUTATION_REQUIRED_MESSAGE,
    MutationPolicy,
    contains_mutation,
)
from schema_cache import SchemaCache

APP_NAME = "hasura-mcp"
SCHEMA_RESOURCE_URI = "hasura://schema"
SDL_RESOURCE_URI = "hasura://schema.graphql"
DEFAULT_PREVIEW_LIMIT = 5
AGGREGATE_FUNCTIONS = ("count", "sum", "avg", "min", "max")
WRITE_ACCESS_WARNING = (
    "Mutation fields are present in the schema. These credentials likely have write access. "
    "Consider using read-only credentials."
)
DEFAULT_INSTRUCTIONS = (
    "This server exposes a Hasura GraphQL endpoint. Call list_tables to discover tables, "
    "describe_table before querying one, and preview_table_data for sample rows. Use "
    "aggregate_data for counts and simple statistics. Only fall back to run_graphql_query "
    "when the other tools cannot answer; it accepts read-only queries."
)
MCP_INSTRUCTIONS = os.environ.get("MCP_INSTRUCTIONS", DEFAULT_INSTRUCTIONS)

mcp = FastMCP(APP_NAME, instructions=MCP_INSTRUCTIONS)
mcp.dependencies = ["graphql-core", "aiohttp", "python-dotenv", "pydantic"]
logger = logging.getLogger(APP_NAME)


class SchemaLookupError(LookupError):
    """A table, type or root field the caller asked for does not exist."""


class ToolValidationError(ValueError):
    """Tool arguments were rejected before contacting the endpoint."""


@dataclass
class Runtime:
    config: ServerConfig
    client: GraphQLClient
    schema_cache: SchemaCache


_RUNTIME: Runtime | None = None
_MUTATION_TOOL_REGISTERED = False


def configure_runtime(config: ServerConfig, *, client: GraphQLClient | None = None) -> Runtime:
    global _RUNTIME
    client = client or GraphQLClient(config=config)
    _RUNTIME = Runtime(config=config, client=client, schema_cache=SchemaCache(client.fetch_schema))
    if config.mutation_policy is MutationPolicy.SEPARATE_TOOL:
        _register_mutation_tool()
    return _RUNTIME


def _runtime() -> Runtime:
    if _RUNTIME is None:
        raise RuntimeError("Server runtime is not configured; call configure_runtime() first.")
    return _RUNTIME


async def _schema() -> IntrospectionSchema:
    return await _runtime().schema_cache.get()


def _to_text(payload: Any) -> str:
    return json.dumps(payload, indent=2)


def tool_errors(label: str) -> Callable[[Callable[..., Awaitable[str]]], Callable[..., Awaitable[str]]]:
    """
    Turn exceptions raised by a tool into its text result.

    Lookup and validation errors are returned as their bare message; anything
    else is prefixed with `label`.
    """

    def decorator(fn: Callable[..., Awaitable[str]]) -> Callable[..., Awaitable[str]]:
        @functools.wraps(fn)
        async def wrapper(*args, **kwargs) -> str:
            try:
                return await fn(*args, **kwargs)
            except (SchemaLookupError, ToolValidationError) as exc:
                return str(exc)
            except Exception as exc:
                logger.warning("%s: %s", label, exc, exc_info=logger.isEnabledFor(logging.DEBUG))
                return f"{label}: {exc}"

        return wrapper

    return decorator


def _describe_args(args: list[dict]) -> list[dict]:
    return [{"name": arg["name"], "type": to_type_string(arg["type"])} for arg in args or []]


def _describe_field(field: dict) -> dict:
    return {
        "name": field["name"],
        "description": field.get("description"),
        "type": to_type_string(field["type"]),
        "args": _describe_args(field.get("args")),
    }


@mcp.resource(
    SCHEMA_RESOURCE_URI,
    name="schema",
    description="Full GraphQL introspection schema of the endpoint.",
    mime_type="application/json",
)
async def schema_resource() -> str:
    return _to_text(await _schema())


@mcp.resource(
    SDL_RESOURCE_URI,
    name="schema_sdl",
    description="GraphQL schema of the endpoint printed as SDL.",
    mime_type="text/plain",
)
async def schema_sdl_resource() -> str:
    return to_sdl(await _schema())


@mcp.tool()
@tool_errors("Health check failed")
async def health_check(healthEndpointUrl: Optional[AnyHttpUrl] = None) -> str:
    """
    Check that the GraphQL endpoint answers.

    With `healthEndpointUrl`, GET that URL and report its status and body.
    Otherwise run `query { __typename }` and report whether the credentials
    can see mutation fields.
    """
    runtime = _runtime()
    if healthEndpointUrl:
        status, body = await runtime.client.get_text(str(healthEndpointUrl))
        return _to_text({"status": status, "body": body.strip()})

    data = await runtime.client.request("query { __typename }")
    schema = await runtime.schema_cache.get()
    has_mutation_fields = bool(get_root_fields(schema, "mutation"))
    warnings = [WRITE_ACCESS_WARNING] if has_mutation_fields else []
    return _to_text({"data": data, "hasMutationFields": has_mutation_fields, "warnings": warnings})


@mcp.tool()
@tool_errors("Failed to list tables")
async def list_tables(schemaName: Optional[str] = None) -> str:
    """List tables exposed by the endpoint, sorted by name. `schemaName` is accepted but not used yet."""
    schema = await _schema()
    return _to_text({"tables": list_table_names(schema)})


@mcp.tool()
@tool_errors("Failed to describe table")
async def describe_table(tableName: str, schemaName: Optional[str] = None) -> str:
    """
    Describe the columns of a table: type, whether it is a list, whether it is nullable.

    Tables in a non-default database schema can be found by passing `schemaName`
    (the type is then named `<schemaName>_<tableName>`).
    """
    schema = await _schema()
    table_type = resolve_table_type(schema, tableName, schemaName)
    if table_type is None or table_type.get("fields") is None:
        raise SchemaLookupError(f"Table not found: {tableName}")

    fields = []
    for field in table_type["fields"]:
        info = unwrap_type(field["type"])
        fields.append(
            {
                "name": field["name"],
                "description": field.get("description"),
                "type": to_type_string(field["type"]),
                "isList": info.is_list,
                "isNullable": not info.is_non_null,
            }
        )
    return _to_text({"tableName": tableName, "fields": fields})


@mcp.tool()
@tool_errors("Failed to list root fields")
async def list_root_fields(
    fieldType: Optional[Literal["QUERY", "MUTATION", "SUBSCRIPTION"]] = None,
) -> str:
    """List the fields of the query (default), mutation or subscription root type with their arguments."""
    operation = (fieldType or "QUERY").lower()
    if operation not in ("query", "mutation", "subscription"):
        raise ToolValidationError(f"Unknown field type: {fieldType}")
    schema = await _schema()
    fields = get_root_fields(schema, operation)
    if fields is None:
        raise SchemaLookupError(f"Root type not found for {operation}")
    return _to_text(
        {"fieldType": operation.upper(), "fields": [_describe_field(field) for field in fields]}
    )


@mcp.tool()
@tool_errors("Failed to describe type")
async def describe_graphql_type(typeName: str) -> str:
    """Describe any GraphQL type by name: its kind, fields, enum values or input fields."""
    schema = await _schema()
    found = get_type_by_name(schema, typeName)
    if found is None:
        raise SchemaLookupError(f"Type not found: {typeName}")

    details: dict[str, Any] = {
        "name": found["name"],
        "kind": found["kind"],
        "description": found.get("description"),
    }
    if found.get("fields") is not None:
        details["fields"] = [_describe_field(field) for field in found["fields"]]
    if found.get("enumValues") is not None:
        details["enumValues"] = [
            {"name": value["name"], "description": value.get("description")}
            for value in found["enumValues"]
        ]
    if found.get("inputFields") is not None:
        details["inputFields"] = [
            {"name": field["name"], "type": to_type_string(field["type"])}
            for field in found["inputFields"]
        ]
    return _to_text(details)


def _leaf_field_names(schema: IntrospectionSchema, type_ref: TypeRef, table_name: str) -> list[str]:
    named = unwrap_type(type_ref)
    table_type = get_type_by_name(schema, named.name) if named.name else None
    if table_type is None or table_type.get("fields") is None:
        raise SchemaLookupError(f"Cannot resolve object type for {table_name}")
    return [
        field["name"]
        for field in table_type["fields"]
        if is_scalar_or_enum(unwrap_type(field["type"]).name, schema)
    ]


@mcp.tool()
@tool_errors("Failed to preview data")
async def preview_table_data(tableName: str, limit: int = DEFAULT_PREVIEW_LIMIT) -> str:
    """Fetch the first `limit` rows (default 5) of a table, selecting every scalar and enum column."""
    if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
        raise ToolValidationError("Limit must be a positive integer.")

    schema = await _schema()
    root_fields = get_root_fields(schema, "query") or []
    field = next((f for f in root_fields if f["name"] == tableName), None)
    if field is None:
        raise SchemaLookupError(f"Query root field not found: {tableName}")

    columns = _leaf_field_names(schema, field["type"], tableName)
    if not columns:
        raise SchemaLookupError(f"No scalar fields found for {tableName}")

    selection = " ".join(columns)
    query = f"query PreviewTable($limit: Int) {{ {tableName}(limit: $limit) {{ {selection} }} }}"
    data = await _runtime().client.request(query, {"limit": limit})
    return _to_text(data)


def build_aggregate_query(
    table_name: str,
    aggregate_function: str,
    field: str | None = None,
    with_filter: bool = False,
) -> str:
    if aggregate_function == "count":
        aggregate_field = "count"
    else:
        aggregate_field = f"{aggregate_function} {{ {field} }}"
    var_def = f"($where: {table_name}_bool_exp!)" if with_filter else ""
    where_arg = "(where: $where)" if with_filter else ""
    return (
        f"query Aggregate{var_def} {{ {table_name}_aggregate{where_arg} "
        f"{{ aggregate {{ {aggregate_field} }} }} }}"
    )


@mcp.tool()
@tool_errors("Failed to aggregate data")
async def aggregate_data(
    tableName: str,
    aggregateFunction: Literal["count", "sum", "avg", "min", "max"],
    field: Optional[str] = None,
    filter: Optional[dict[str, Any]] = None,
) -> str:
    """
    Aggregate a table through its `<table>_aggregate` root field.

    `field` is required for sum/avg/min/max. `filter` is passed as the `where`
    argument (a `<table>_bool_exp`), e.g. {"name": {"_ilike": "%ada%"}}.
    """
    if aggregateFunction not in AGGREGATE_FUNCTIONS:
        raise ToolValidationError(
            f"Unsupported aggregate function: {aggregateFunction} "
            f"(expected one of: {', '.join(AGGREGATE_FUNCTIONS)})"
        )
    if aggregateFunction != "count" and not field:
        raise ToolValidationError("Field is required for this aggregation.")

    query = build_aggregate_query(tableName, aggregateFunction, field, with_filter=filter is not None)
    variables = {"where": filter} if filter is not None else None
    data = await _runtime().client.request(query, variables)
    return _to_text(data)


@mcp.tool()
@tool_errors("GraphQL query failed")
async def run_graphql_query(query: str, variables: Optional[dict[str, Any]] = None) -> str:
    """Run a read-only GraphQL query. Mutations are rejected."""
    if contains_mutation(query):
        raise ToolValidationError(MUTATION_REJECTED_MESSAGE)
    data = await _runtime().client.request(query, variables or {})
    return _to_text(data)


@tool_errors("GraphQL mutation failed")
async def run_graphql_mutation(mutation: str, variables: Optional[dict[str, Any]] = None) -> str:
    """Run a GraphQL mutation. Anything that is not a mutation is rejected."""
    if not contains_mutation(mutation):
        raise ToolValidationError(MUTATION_REQUIRED_MESSAGE)
    data = await _runtime().client.request(mutation, variables or {})
    return _to_text(data)


def _register_mutation_tool() -> None:
    global _MUTATION_TOOL_REGISTERED
    if _MUTATION_TOOL_REGISTERED:
        return
    mcp.add_tool(
        run_graphql_mutation,
        name="run_graphql_mutation",
        description="Run a GraphQL mutation against the endpoint. Queries are rejected; use run_graphql_query.",
    )
    _MUTATION_TOOL_REGISTERED = True
    logger.warning("Mutation tool enabled: run_graphql_mutation can write to the endpoint.")


def build_arg_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Run the Hasura MCP server.",
        epilog="Unrecognized --name=value or --name value arguments are sent as request headers.",
        allow_abbrev=False,
    )
    parser.add_argument(
        "--endpoint",
        default=None,
        help="GraphQL endpoint URL (default: HASURA_GRAPHQL_ENDPOINT).",
    )
    parser.add_argument(
        "--admin-secret",
        default=None,
        help="Admin secret sent as x-hasura-admin-secret (default: HASURA_GRAPHQL_SECRET).",
    )
    parser.add_argument(
        "--header",
        action="append",
        default=[],
        help="Add an HTTP header, like 'x-hasura-role: viewer' (repeatable).",
    )
    parser.add_argument(
        "--timeout",
        type=float,
        default=None,
        help=f"HTTP timeout in seconds (default: HASURA_GRAPHQL_TIMEOUT_S or {DEFAULT_TIMEOUT_S}).",
    )
    parser.add_argument(
        "--mutations",
        choices=[policy.value for policy in MutationPolicy],
        default=None,
        help="Mutation policy (default: HASURA_MCP_MUTATIONS or read-only).",
    )
    parser.add_argument(
        "--transport",
        choices=["stdio", "sse", "streamable-http"],
        default=os.environ.get("MCP_TRANSPORT", DEFAULT_TRANSPORT),
        help="MCP transport to run (default: stdio; override with MCP_TRANSPORT).",
    )
    parser.add_argument(
        "--host",
        default=mcp.settings.host,
        help="Host for SSE/HTTP transports.",
    )
    parser.add_argument(
        "--port",
        type=int,
        default=mcp.settings.port,
        help="Port for SSE/HTTP transports.",
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("HASURA_MCP_LOG_LEVEL", DEFAULT_LOG_LEVEL),
        help="Log level (DEBUG, INFO, WARNING, ERROR).",
    )
    return parser


def main(argv: list[str] | None = None) -> None:
    parser = build_arg_parser()
    args, extra = parser.parse_known_args(argv)

    log_level = str(args.log_level).upper()
    logging.basicConfig(level=getattr(logging, log_level, logging.INFO))

    try:
        headers = parse_headers(args.header)
        headers.update(parse_flag_headers(extra))
        config = load_server_config(
            endpoint=args.endpoint,
            admin_secret=args.admin_secret,
            headers=headers,
            timeout_s=args.timeout,
            mutation_policy=args.mutations,
        )
    except ValueError as exc:
        raise SystemExit(f"Invalid configuration: {exc}") from exc

    configure_runtime(config)

    mcp.settings.host = args.host
    mcp.settings.port = args.port
    mcp.settings.log_level = log_level

    logger.info(
        "Starting %s with transport=%s, endpoint=%s, headers=%s, mutations=%s",
        APP_NAME,
        args.transport,
        config.endpoint,
        sorted(config.resolved_headers().keys()),
        config.mutation_policy.value,
    )
    mcp.run(transport=args.transport)


if __name__ == "__main__":
    main()
