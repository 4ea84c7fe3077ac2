"""
Helpers for reading a GraphQL introspection document.

The document is kept in its raw JSON shape (as returned by the introspection
query) so it can be served verbatim; these functions derive the facts the
tools need from it: unwrapped type references, printable type strings, which
object types look like database tables, and where the root operation types
live.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Literal, Optional, TypedDict

from graphql import build_client_schema, print_schema

Operation = Literal["query", "mutation", "subscription"]


class TypeRef(TypedDict):
    kind: str
    name: Optional[str]
    ofType: Optional["TypeRef"]


class Argument(TypedDict):
    name: str
    description: Optional[str]
    type: TypeRef


class Field(TypedDict):
    name: str
    description: Optional[str]
    type: TypeRef
    args: list[Argument]


class InputField(TypedDict):
    name: str
    type: TypeRef


class EnumValue(TypedDict):
    name: str
    description: Optional[str]


class NamedType(TypedDict, total=False):
    kind: str
    name: str
    description: Optional[str]
    fields: Optional[list[Field]]
    inputFields: Optional[list[InputField]]
    enumValues: Optional[list[EnumValue]]


class RootTypeRef(TypedDict):
    name: str


class IntrospectionSchema(TypedDict):
    queryType: Optional[RootTypeRef]
    mutationType: Optional[RootTypeRef]
    subscriptionType: Optional[RootTypeRef]
    types: list[NamedType]


# Helper types generated next to every table (aggregates, filters, inputs,
# mutation payloads). Matched as exact, case-sensitive name suffixes.
IGNORE_TYPE_SUFFIXES = (
    "_aggregate",
    "_aggregate_fields",
    "_aggregate_order_by",
    "_avg_fields",
    "_bool_exp",
    "_comparison_exp",
    "_constraint",
    "_inc_input",
    "_max_fields",
    "_min_fields",
    "_mutation_response",
    "_order_by",
    "_pk_columns_input",
    "_select_column",
    "_set_input",
    "_stddev_fields",
    "_stddev_pop_fields",
    "_stddev_samp_fields",
    "_sum_fields",
    "_var_pop_fields",
    "_var_samp_fields",
    "_variance_fields",
    "_stream_cursor_input",
    "_stream_cursor_value_input",
)

DEFAULT_ROOT_TYPE_NAMES: dict[str, str] = {
    "query": "query_root",
    "mutation": "mutation_root",
    "subscription": "subscription_root",
}
ROOT_TYPE_NAMES = frozenset(DEFAULT_ROOT_TYPE_NAMES.values())
_LEAF_KINDS = {"SCALAR", "ENUM"}


@dataclass(frozen=True)
class UnwrappedType:
    name: str | None
    kind: str
    is_list: bool
    is_non_null: bool

    def as_dict(self) -> dict:
        return {
            "name": self.name,
            "kind": self.kind,
            "isList": self.is_list,
            "isNonNull": self.is_non_null,
        }


def unwrap_type(type_ref: TypeRef) -> UnwrappedType:
    """Follow `ofType` to the named type, noting any LIST / NON_NULL wrappers on the way."""
    current = type_ref
    is_list = False
    is_non_null = False
    while current.get("ofType"):
        if current["kind"] == "NON_NULL":
            is_non_null = True
        elif current["kind"] == "LIST":
            is_list = True
        current = current["ofType"]
    return UnwrappedType(
        name=current.get("name"),
        kind=current["kind"],
        is_list=is_list,
        is_non_null=is_non_null,
    )


def to_type_string(type_ref: TypeRef) -> str:
    inner = type_ref.get("ofType")
    if type_ref["kind"] == "NON_NULL" and inner:
        return f"{to_type_string(inner)}!"
    if type_ref["kind"] == "LIST" and inner:
        return f"[{to_type_string(inner)}]"
    return type_ref.get("name") or type_ref["kind"]


def get_type_by_name(schema: IntrospectionSchema, name: str) -> NamedType | None:
    for named_type in schema["types"]:
        if named_type.get("name") == name:
            return named_type
    return None


def is_scalar_or_enum(type_name: str | None, schema: IntrospectionSchema) -> bool:
    if not type_name:
        return False
    found = get_type_by_name(schema, type_name)
    if found is None:
        return False
    return found.get("kind") in _LEAF_KINDS


def is_likely_table_type(named_type: NamedType) -> bool:
    """
    Guess whether an object type is a table rather than a generated helper.

    Naming-convention heuristic: a real table whose name happens to end in one
    of IGNORE_TYPE_SUFFIXES is filtered out as well.
    """
    if named_type.get("kind") != "OBJECT":
        return False
    name = named_type.get("name")
    if not name or name.startswith("__"):
        return False
    if name in ROOT_TYPE_NAMES:
        return False
    if name.endswith(IGNORE_TYPE_SUFFIXES):
        return False
    return bool(named_type.get("fields"))


def get_root_type_name(schema: IntrospectionSchema, operation: Operation) -> str:
    try:
        default = DEFAULT_ROOT_TYPE_NAMES[operation]
    except KeyError as exc:
        raise ValueError(f"Unknown operation type: {operation}") from exc
    declared = schema.get(f"{operation}Type")
    if declared and declared.get("name"):
        return declared["name"]
    return default


def get_root_fields(schema: IntrospectionSchema, operation: Operation) -> list[Field] | None:
    root_type = get_type_by_name(schema, get_root_type_name(schema, operation))
    if root_type is None:
        return None
    return root_type.get("fields")


def to_sdl(schema: IntrospectionSchema) -> str:
    return print_schema(build_client_schema({"__schema": schema}))


def list_table_names(schema: IntrospectionSchema) -> list[str]:
    return sorted(t["name"] for t in schema["types"] if is_likely_table_type(t))


def resolve_table_type(
    schema: IntrospectionSchema,
    table_name: str,
    schema_name: str | None = None,
) -> NamedType | None:
    """
    Find a table type by name.

    Tries the exact name, then the `<schema>_<table>` name used for tables
    outside the default database schema, then a case-insensitive match.
    """
    candidates = [table_name]
    if schema_name:
        candidates.append(f"{schema_name}_{table_name}")
    for candidate in candidates:
        found = get_type_by_name(schema, candidate)
        if found is not None:
            return found
    lowered = table_name.lower()
    for named_type in schema["types"]:
        if (named_type.get("name") or "").lower() == lowered:
            return named_type
    return None
