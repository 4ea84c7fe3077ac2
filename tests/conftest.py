import pytest

import server
from config import ServerConfig
from query_guard import MutationPolicy

ENDPOINT = "http://hasura.test/v1/graphql"


def named(kind, name):
    return {"kind": kind, "name": name, "ofType": None}


def non_null(inner):
    return {"kind": "NON_NULL", "name": None, "ofType": inner}


def list_of(inner):
    return {"kind": "LIST", "name": None, "ofType": inner}


def field(name, type_ref, args=None, description=None):
    return {
        "name": name,
        "description": description,
        "args": args or [],
        "type": type_ref,
        "isDeprecated": False,
        "deprecationReason": None,
    }


def arg(name, type_ref, description=None):
    return {"name": name, "description": description, "type": type_ref, "defaultValue": None}


def object_type(name, fields, description=None):
    return {
        "kind": "OBJECT",
        "name": name,
        "description": description,
        "fields": fields,
        "inputFields": None,
        "interfaces": [],
        "enumValues": None,
        "possibleTypes": None,
    }


def scalar_type(name):
    return {
        "kind": "SCALAR",
        "name": name,
        "description": None,
        "fields": None,
        "inputFields": None,
        "interfaces": None,
        "enumValues": None,
        "possibleTypes": None,
    }


def enum_type(name, values, description=None):
    return {
        "kind": "ENUM",
        "name": name,
        "description": description,
        "fields": None,
        "inputFields": None,
        "interfaces": None,
        "enumValues": [
            {"name": value, "description": None, "isDeprecated": False, "deprecationReason": None}
            for value in values
        ],
        "possibleTypes": None,
    }


def input_type(name, input_fields):
    return {
        "kind": "INPUT_OBJECT",
        "name": name,
        "description": None,
        "fields": None,
        "inputFields": [
            {"name": field_name, "description": None, "type": type_ref, "defaultValue": None}
            for field_name, type_ref in input_fields
        ],
        "interfaces": None,
        "enumValues": None,
        "possibleTypes": None,
    }


def build_hasura_schema():
    """Introspection result shaped like Hasura's for an `authors` / `articles` database."""
    uuid = non_null(named("SCALAR", "uuid"))
    text = non_null(named("SCALAR", "String"))
    timestamp = non_null(named("SCALAR", "timestamptz"))
    limit_arg = arg("limit", named("SCALAR", "Int"), description="limit the number of rows returned")
    where_authors = arg("where", named("INPUT_OBJECT", "authors_bool_exp"))

    authors = object_type(
        "authors",
        [
            field("id", uuid),
            field("name", text),
            field("created_at", timestamp),
            field(
                "articles",
                non_null(list_of(non_null(named("OBJECT", "articles")))),
                args=[limit_arg],
                description="An array relationship",
            ),
        ],
        description='columns and relationships of "authors"',
    )
    articles = object_type(
        "articles",
        [
            field("id", uuid),
            field("author_id", uuid),
            field("title", text),
            field("body", named("SCALAR", "String")),
            field("status", named("ENUM", "article_status")),
            field("author", non_null(named("OBJECT", "authors"))),
        ],
    )
    sales_orders = object_type("sales_orders", [field("id", uuid)])

    query_root = object_type(
        "query_root",
        [
            field(
                "authors",
                non_null(list_of(non_null(named("OBJECT", "authors")))),
                args=[limit_arg, where_authors],
                description='fetch data from the table: "authors"',
            ),
            field(
                "authors_aggregate",
                non_null(named("OBJECT", "authors_aggregate")),
                args=[where_authors],
            ),
            field("articles", non_null(list_of(non_null(named("OBJECT", "articles")))), args=[limit_arg]),
            field("sales_orders", non_null(list_of(non_null(named("OBJECT", "sales_orders"))))),
        ],
    )
    mutation_root = object_type(
        "mutation_root",
        [
            field(
                "insert_authors",
                named("OBJECT", "authors_mutation_response"),
                args=[arg("objects", non_null(list_of(non_null(named("INPUT_OBJECT", "authors_insert_input")))))],
            )
        ],
    )

    return {
        "queryType": {"name": "query_root"},
        "mutationType": {"name": "mutation_root"},
        "subscriptionType": None,
        "types": [
            scalar_type("Boolean"),
            scalar_type("Int"),
            scalar_type("String"),
            scalar_type("uuid"),
            scalar_type("timestamptz"),
            enum_type("article_status", ["draft", "published"], description="publication state"),
            enum_type("authors_select_column", ["id", "name", "created_at"]),
            authors,
            articles,
            sales_orders,
            object_type(
                "authors_aggregate",
                [field("aggregate", named("OBJECT", "authors_aggregate_fields"))],
            ),
            object_type("authors_aggregate_fields", [field("count", non_null(named("SCALAR", "Int")))]),
            object_type("authors_mutation_response", [field("affected_rows", non_null(named("SCALAR", "Int")))]),
            input_type("String_comparison_exp", [("_eq", named("SCALAR", "String")), ("_ilike", named("SCALAR", "String"))]),
            input_type("authors_bool_exp", [("name", named("INPUT_OBJECT", "String_comparison_exp"))]),
            input_type("authors_insert_input", [("name", named("SCALAR", "String"))]),
            query_root,
            mutation_root,
            object_type("__Schema", [field("description", named("SCALAR", "String"))]),
        ],
    }


class FakeGraphQLClient:
    """Stands in for GraphQLClient; records requests and replays canned results."""

    def __init__(self, schema):
        self.schema = schema
        self.schema_error = None
        self.fetch_count = 0
        self.response = {}
        self.error = None
        self.requests = []
        self.health = (200, "OK\n")
        self.get_urls = []

    async def fetch_schema(self):
        self.fetch_count += 1
        if self.schema_error is not None:
            raise self.schema_error
        return self.schema

    async def request(self, query, variables=None):
        self.requests.append((query, variables))
        if self.error is not None:
            raise self.error
        return self.response

    async def get_text(self, url):
        self.get_urls.append(url)
        return self.health


@pytest.fixture
def hasura_schema():
    return build_hasura_schema()


@pytest.fixture
def fake_client(hasura_schema):
    return FakeGraphQLClient(hasura_schema)


@pytest.fixture
def runtime(fake_client, monkeypatch):
    monkeypatch.setattr(server, "_RUNTIME", None)
    return server.configure_runtime(
        ServerConfig(endpoint=ENDPOINT, mutation_policy=MutationPolicy.READ_ONLY),
        client=fake_client,
    )
