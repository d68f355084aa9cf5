"""
Built-in pattern catalogue: source of truth for the default PatternLibrary.

Template records are kept in the same declarative shape an external store
would supply ({id, category, implied_constraints, inherits_from,
integrates_with, ...}) so the same loader handles both.

Also holds the static technology compatibility table and the per-domain
constraint keys a complete CompiledSpec is expected to pin down.
"""

from __future__ import annotations

from typing import Any

from rlcompiler.models.patterns import PatternTemplate


# ---------------------------------------------------------------------------
# Shared component fragments
# ---------------------------------------------------------------------------

_CLIENT = {"id": "client", "type": "client", "label": "Client", "layer": 0}
_API_SERVER = {"id": "api_server", "type": "service", "label": "API Server", "technology": "{framework}"}


# ---------------------------------------------------------------------------
# Template records
# ---------------------------------------------------------------------------
# Keys follow the external template-store format. Keywords are matched
# case-insensitively against extracted signal terms.

DEFAULT_TEMPLATE_RECORDS: list[dict[str, Any]] = [
    # ---- Communication ----
    {
        "id": "http_service",
        "category": "communication",
        "implied_constraints": {"protocol": "http", "transport": "tcp"},
        "keywords": ["http", "https", "web service"],
        "domains": ["web_api", "web_app", "microservices"],
        "components": [_CLIENT, _API_SERVER],
        "connections": [{"source": "client", "target": "api_server", "type": "request", "label": "HTTP"}],
    },
    {
        "id": "rest_api",
        "category": "communication",
        "implied_constraints": {"api_style": "rest", "format": "json"},
        "inherits_from": ["http_service"],
        "integrates_with": ["jwt_authentication", "oauth2_authentication"],
        "keywords": ["rest", "restful", "rest api", "crud"],
        "intents": ["build", "extend", "integrate", "migrate"],
        "domains": ["web_api", "microservices"],
        "connections": [{"source": "client", "target": "api_server", "type": "request", "label": "HTTP/JSON"}],
    },
    {
        "id": "graphql_api",
        "category": "communication",
        "implied_constraints": {"api_style": "graphql", "format": "json"},
        "inherits_from": ["http_service"],
        "keywords": ["graphql", "apollo"],
        "intents": ["build", "extend", "integrate"],
        "domains": ["web_api", "web_app"],
        "connections": [{"source": "client", "target": "api_server", "type": "query", "label": "GraphQL"}],
    },
    {
        "id": "grpc_service",
        "category": "communication",
        "implied_constraints": {"protocol": "grpc", "format": "protobuf"},
        "keywords": ["grpc", "protobuf", "protocol buffers"],
        "intents": ["build", "integrate", "optimize"],
        "domains": ["microservices", "web_api"],
        "components": [
            {"id": "grpc_client", "type": "client", "label": "gRPC Client", "layer": 0},
            _API_SERVER,
        ],
        "connections": [{"source": "grpc_client", "target": "api_server", "type": "rpc", "label": "gRPC"}],
    },

    # ---- Security ----
    {
        "id": "token_authentication",
        "category": "security",
        "implied_constraints": {"auth_scheme": "bearer"},
        "keywords": ["token", "bearer", "api key"],
        "components": [{"id": "auth_service", "type": "service", "label": "Auth Service", "technology": "{auth}"}],
        "connections": [{"source": "api_server", "target": "auth_service", "type": "verify", "label": "verify token"}],
    },
    {
        "id": "jwt_authentication",
        "category": "security",
        "implied_constraints": {"auth": "jwt", "token_format": "jwt"},
        "inherits_from": ["token_authentication"],
        "integrates_with": ["rest_api", "oauth2_authentication"],
        "keywords": ["jwt", "json web token", "json web tokens"],
        "domains": ["web_api", "web_app"],
    },
    {
        "id": "oauth2_authentication",
        "category": "security",
        "implied_constraints": {"auth": "oauth2", "identity_provider": "external"},
        "inherits_from": ["token_authentication"],
        "integrates_with": ["jwt_authentication", "rest_api"],
        "keywords": ["oauth", "oauth2", "sso", "openid", "oidc"],
        "domains": ["web_api", "web_app"],
        "components": [{"id": "identity_provider", "type": "external", "label": "Identity Provider"}],
        "connections": [
            {"source": "auth_service", "target": "identity_provider", "type": "delegate", "label": "OAuth2"},
        ],
    },

    # ---- Persistence ----
    {
        "id": "relational_persistence",
        "category": "persistence",
        "implied_constraints": {"storage": "relational"},
        "keywords": ["sql", "relational", "rdbms"],
        "components": [
            {"id": "database", "type": "datastore", "label": "Database", "technology": "{database}"},
        ],
        "connections": [{"source": "api_server", "target": "database", "type": "query", "label": "SQL"}],
    },
    {
        "id": "postgresql_storage",
        "category": "persistence",
        "implied_constraints": {"database": "postgresql"},
        "inherits_from": ["relational_persistence"],
        "keywords": ["postgresql", "postgres", "psql"],
    },
    {
        "id": "mysql_storage",
        "category": "persistence",
        "implied_constraints": {"database": "mysql"},
        "inherits_from": ["relational_persistence"],
        "keywords": ["mysql", "mariadb"],
    },
    {
        "id": "document_storage",
        "category": "persistence",
        "implied_constraints": {"storage": "document", "database": "mongodb"},
        "keywords": ["mongodb", "mongo", "nosql", "document store"],
        "components": [
            {"id": "database", "type": "datastore", "label": "Document Store", "technology": "{database}"},
        ],
        "connections": [{"source": "api_server", "target": "database", "type": "query", "label": "documents"}],
    },
    {
        "id": "caching_layer",
        "category": "performance",
        "implied_constraints": {"cache": "redis"},
        "keywords": ["redis", "cache", "caching", "memcached"],
        "intents": ["build", "optimize", "extend"],
        "components": [{"id": "cache", "type": "cache", "label": "Cache", "technology": "{cache}"}],
        "connections": [{"source": "api_server", "target": "cache", "type": "lookup", "label": "cache lookups"}],
    },

    # ---- Messaging / architecture ----
    {
        "id": "message_queue",
        "category": "messaging",
        "implied_constraints": {"messaging": "rabbitmq"},
        "keywords": ["queue", "message queue", "rabbitmq", "amqp"],
        "components": [
            {"id": "broker", "type": "broker", "label": "Message Broker", "technology": "{messaging}"},
            {"id": "worker", "type": "worker", "label": "Background Worker"},
        ],
        "connections": [
            {"source": "api_server", "target": "broker", "type": "publish", "label": "enqueue", "flow": "async"},
            {"source": "broker", "target": "worker", "type": "consume", "label": "deliver", "flow": "async"},
        ],
    },
    {
        "id": "event_driven",
        "category": "messaging",
        "implied_constraints": {"architecture": "event_driven", "messaging": "kafka"},
        "inherits_from": ["message_queue"],
        "keywords": ["kafka", "events", "event-driven", "event driven", "event sourcing", "pubsub"],
        "intents": ["build", "integrate", "migrate"],
        "domains": ["microservices", "data_pipeline"],
    },
    {
        "id": "microservices",
        "category": "architecture",
        "implied_constraints": {"architecture": "microservices", "deployment": "kubernetes"},
        "integrates_with": ["event_driven"],
        "keywords": ["microservices", "microservice", "service mesh", "kubernetes", "k8s"],
        "intents": ["build", "migrate"],
        "domains": ["microservices"],
        "components": [
            {"id": "api_gateway", "type": "gateway", "label": "API Gateway", "layer": 0},
        ],
        "connections": [{"source": "api_gateway", "target": "api_server", "type": "route", "label": "routes"}],
    },
    {
        "id": "container_deployment",
        "category": "deployment",
        "implied_constraints": {"deployment": "container"},
        "keywords": ["docker", "container", "containers", "containerized"],
    },

    # ---- Data processing ----
    {
        "id": "etl_pipeline",
        "category": "data",
        "implied_constraints": {"processing": "batch", "storage": "warehouse"},
        "keywords": ["etl", "elt", "pipeline", "ingestion", "batch"],
        "intents": ["build", "optimize", "migrate"],
        "domains": ["data_pipeline"],
        "components": [
            {"id": "source", "type": "source", "label": "Data Source", "layer": 0},
            {"id": "transformer", "type": "processor", "label": "Transformer", "technology": "{language}"},
            {"id": "warehouse", "type": "datastore", "label": "Warehouse", "technology": "{storage}"},
        ],
        "connections": [
            {"source": "source", "target": "transformer", "type": "extract", "label": "extract", "flow": "pipeline"},
            {"source": "transformer", "target": "warehouse", "type": "load", "label": "load", "flow": "pipeline"},
        ],
    },
    {
        "id": "stream_processing",
        "category": "data",
        "implied_constraints": {"processing": "streaming"},
        "inherits_from": ["etl_pipeline"],
        "integrates_with": ["event_driven"],
        "keywords": ["streaming", "stream processing", "real-time", "realtime", "flink"],
        "intents": ["build", "optimize"],
        "domains": ["data_pipeline"],
    },

    # ---- Language / framework stacks ----
    {
        "id": "python_stack",
        "category": "stack",
        "implied_constraints": {"language": "python"},
        "keywords": ["python"],
    },
    {
        "id": "fastapi_service",
        "category": "stack",
        "implied_constraints": {"framework": "fastapi", "orm": "sqlalchemy"},
        "inherits_from": ["python_stack"],
        "keywords": ["fastapi"],
        "domains": ["web_api", "microservices"],
    },
    {
        "id": "django_app",
        "category": "stack",
        "implied_constraints": {"framework": "django", "orm": "django_orm"},
        "inherits_from": ["python_stack"],
        "keywords": ["django"],
        "domains": ["web_app", "web_api"],
    },
    {
        "id": "typescript_stack",
        "category": "stack",
        "implied_constraints": {"language": "typescript"},
        "keywords": ["typescript", "node", "nodejs", "node.js"],
    },
    {
        "id": "express_service",
        "category": "stack",
        "implied_constraints": {"framework": "express", "orm": "prisma"},
        "inherits_from": ["typescript_stack"],
        "keywords": ["express", "expressjs"],
        "domains": ["web_api", "web_app"],
    },
    {
        "id": "spring_service",
        "category": "stack",
        "implied_constraints": {"language": "java", "framework": "spring", "orm": "hibernate"},
        "keywords": ["java", "spring", "spring boot"],
        "domains": ["web_api", "microservices"],
    },
]


def default_templates() -> list[PatternTemplate]:
    """Parse the built-in records into PatternTemplate models."""
    return [PatternTemplate.model_validate(record) for record in DEFAULT_TEMPLATE_RECORDS]


# ---------------------------------------------------------------------------
# Technology coherence table
# ---------------------------------------------------------------------------
# constraint key -> language -> allowed values (first entry is the suggestion)

STACK_COMPATIBILITY: dict[str, dict[str, tuple[str, ...]]] = {
    "framework": {
        "python": ("fastapi", "django", "flask"),
        "typescript": ("express", "nestjs", "nextjs"),
        "javascript": ("express", "nestjs", "nextjs"),
        "java": ("spring", "quarkus", "micronaut"),
        "go": ("gin", "echo", "fiber"),
        "ruby": ("rails", "sinatra"),
    },
    "orm": {
        "python": ("sqlalchemy", "django_orm", "peewee"),
        "typescript": ("prisma", "typeorm"),
        "javascript": ("prisma", "sequelize"),
        "java": ("hibernate", "jooq"),
        "go": ("gorm",),
        "ruby": ("activerecord",),
    },
}


# ---------------------------------------------------------------------------
# Constraint completeness expectations
# ---------------------------------------------------------------------------

REQUIRED_CONSTRAINTS: dict[str, tuple[str, ...]] = {
    "web_api": ("language", "framework", "protocol", "format", "auth", "database"),
    "web_app": ("language", "framework", "auth", "database"),
    "microservices": ("language", "protocol", "messaging", "deployment"),
    "data_pipeline": ("language", "processing", "storage"),
}
DEFAULT_REQUIRED_CONSTRAINTS: tuple[str, ...] = ("language", "framework")


def required_constraints(domain: str) -> tuple[str, ...]:
    """Look up the keys a CompiledSpec in `domain` should pin down."""
    return REQUIRED_CONSTRAINTS.get(domain, DEFAULT_REQUIRED_CONSTRAINTS)
