"""Server configuration read from the environment."""

import os

# Env var names
ENV_DATABASE_URL = "TRAITORS_DATABASE_URL"
ENV_CORS_ORIGINS = "TRAITORS_CORS_ORIGINS"
ENV_SQL_ECHO = "TRAITORS_SQL_ECHO"

DEFAULT_DATABASE_URL = "sqlite:///./traitors.db"

# Header the auth layer in front of the API sets to the signed-in user's id
ACTOR_HEADER = "X-Actor-Id"


def get_database_url() -> str:
    return os.environ.get(ENV_DATABASE_URL) or DEFAULT_DATABASE_URL


def get_cors_origins() -> list[str]:
    raw = os.environ.get(ENV_CORS_ORIGINS) or "*"
    return [origin.strip() for origin in raw.split(",") if origin.strip()]


def get_sql_echo() -> bool:
    return (os.environ.get(ENV_SQL_ECHO) or "").lower() in ("1", "true", "yes")
