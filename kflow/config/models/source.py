"""Record source backend configuration."""

from typing import Literal

from pydantic import BaseModel, Field

SourceBackend = Literal["inmemory", "postgrest"]


class SourceConfig(BaseModel):
    """Configuration for the remote customer/offer record source."""

    backend: SourceBackend = Field(
        default="inmemory",
        description="Backend type",
    )
    url: str | None = Field(
        default=None,
        description="Base URL of the hosted database API (from env var)",
    )
    api_key: str | None = Field(
        default=None,
        description="Anon or service key sent as apikey and bearer token",
    )
    schema_name: str = Field(
        default="public",
        description="Database schema exposed by the REST API",
    )
    timeout: float = Field(
        default=30.0,
        gt=0,
        description="Request timeout in seconds",
    )
