"""
Shared configuration management for the rules services.
"""

from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class BaseConfig(BaseSettings):
    """Base configuration class with common settings."""

    model_config = SettingsConfigDict(
        env_prefix="RULES_",
        env_file=".env",
        case_sensitive=False,
        extra="allow"
    )

    # Environment
    env: str = Field(default="local", description="Deployment environment")
    log_level: str = Field(default="info", description="Log level")

    # Document store
    store_url: str = Field(default="http://localhost:3000", description="Base URL of the document store")
    store_ws_url: Optional[str] = Field(default=None, description="Websocket URL used for watches")
    store_token: Optional[str] = Field(default=None, description="Bearer token for the store")
    store_timeout: float = Field(default=10.0, description="Store request timeout in seconds")

    # Namespace layout
    global_root: str = Field(default="/bookmarks/rules", description="Global rules namespace")
    services_root: str = Field(default="/bookmarks/services", description="Root of per-service namespaces")

    # Compiler
    check_types: bool = Field(default=False, description="Check content types when compiling rules")


class ServiceConfig(BaseConfig):
    """Service-specific configuration."""

    service_name: str
    port: int
    host: str = "0.0.0.0"

    def __init__(self, service_name: str, port: int, **kwargs):
        super().__init__(service_name=service_name, port=port, **kwargs)


def get_config(service_name: str, port: int) -> ServiceConfig:
    """Get configuration for a specific service."""
    return ServiceConfig(service_name=service_name, port=port)
