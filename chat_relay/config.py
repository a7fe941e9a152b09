"""Runtime configuration for the relay server.

Values come from environment variables; ``load_env()`` pulls a ``.env`` file
from the current working directory or any parent directory first.
"""

import os
from typing import Literal, Mapping, Optional

from pydantic import BaseModel, Field

LedgerBackend = Literal["sql", "memory", "mongodb", "none"]

_ENV_FIELDS = {
    "HOST": "host",
    "PORT": "port",
    "RELAY_COOKIE_NAME": "cookie_name",
    "RELAY_LEDGER": "ledger",
    "RELAY_SQL_URL": "sql_url",
    "MONGODB_CONNECTION": "mongo_uri",
    "RELAY_MONGO_DB": "mongo_db",
    "RELAY_MONGO_COLLECTION": "mongo_collection",
    "RELAY_SHUTDOWN_TIMEOUT": "shutdown_timeout",
    "LOG_LEVEL": "log_level",
}


class RelayConfig(BaseModel):
    """Server settings shared by the app factory and the entry point."""
    host: str = "0.0.0.0"
    port: int = Field(default=8080, ge=1, le=65535)
    cookie_name: str = "userId"
    """Name of the identity cookie issued by ``GET /`` and read on connect."""
    ledger: LedgerBackend = "sql"
    sql_url: str = "sqlite://"
    mongo_uri: Optional[str] = None
    mongo_db: str = "chat_relay"
    mongo_collection: str = "visitors"
    shutdown_timeout: float = Field(default=5.0, ge=0)
    """Seconds to wait for pending ledger writes on shutdown."""
    log_level: str = "INFO"

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "RelayConfig":
        """Build a config from environment variables. Unset variables keep their defaults."""
        environ = os.environ if environ is None else environ
        values = {
            field_name: environ[var]
            for var, field_name in _ENV_FIELDS.items()
            if environ.get(var)
        }
        if "ledger" in values:
            values["ledger"] = values["ledger"].lower()
        if "log_level" in values:
            values["log_level"] = values["log_level"].upper()
        return cls.model_validate(values)


def load_env() -> None:
    """Load ``.env`` into ``os.environ`` without overriding existing variables."""
    from dotenv import load_dotenv, find_dotenv
    load_dotenv(find_dotenv(usecwd=True))
