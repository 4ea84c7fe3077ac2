from __future__ import annotations

import re
from enum import Enum

_LINE_COMMENT = re.compile(r"#.*$", re.MULTILINE)
_BLOCK_STRING = re.compile(r'"""[\s\S]*?"""')
_MUTATION_OPERATION = re.compile(r"^\s*mutation\s", re.IGNORECASE | re.MULTILINE)
_ANONYMOUS_MUTATION = re.compile(r"\bmutation\s*\{", re.IGNORECASE)

MUTATION_REJECTED_MESSAGE = "Mutation operations are not allowed."
MUTATION_REQUIRED_MESSAGE = "Only mutation operations are allowed."


class MutationPolicy(str, Enum):
    """How the server exposes write access to the endpoint."""

    READ_ONLY = "read-only"
    SEPARATE_TOOL = "separate-tool"

    @classmethod
    def parse(cls, value: str) -> "MutationPolicy":
        normalized = value.strip().lower().replace("_", "-")
        for policy in cls:
            if policy.value == normalized:
                return policy
        choices = ", ".join(policy.value for policy in cls)
        raise ValueError(f"Invalid mutation policy {value!r} (expected one of: {choices})")


def normalize_query(query: str) -> str:
    stripped = _LINE_COMMENT.sub("", query)
    stripped = _BLOCK_STRING.sub("", stripped)
    return stripped.strip()


def contains_mutation(query: str) -> bool:
    """
    Detect mutation operations in GraphQL text without parsing it.

    Matches a line starting with `mutation ` (named or with variables) or an
    anonymous `mutation {` anywhere, after comments and block strings are removed.
    """
    normalized = normalize_query(query)
    return bool(_MUTATION_OPERATION.search(normalized) or _ANONYMOUS_MUTATION.search(normalized))
