"""
Configuration for the Enphase exporter

All settings come from environment variables (or a .env file in the working
directory):

    Gateway Connection:
        ENVOY_ADDRESS        - Gateway address, e.g. https://envoy.local (required)
        ENVOY_SERIAL         - Gateway serial number (required)
        ENVOY_JWT            - Bearer token, generate at https://entrez.enphaseenergy.com
        ENVOY_USERNAME       - Enlighten username, used with ENVOY_PASSWORD when no JWT is set
        ENVOY_PASSWORD       - Enlighten password
        ENVOY_TIMEOUT        - Seconds per gateway request (default: 30)

    Server:
        EXPORTER_BIND_ADDRESS - Bind address (default: all interfaces)
        EXPORTER_PORT         - Port for /metrics, /health and /ready (default: 9090)
        SHUTDOWN_GRACE        - Seconds in-flight requests get at shutdown (default: 30)

    Startup Authentication:
        AUTH_RETRIES         - Attempts before giving up (default: 5)
        AUTH_RETRY_DELAY     - Seconds before the first retry, doubled each time (default: 5)

    Logging:
        LOG_LEVEL            - debug, info, warn or error (default: info)
        LOG_FORMAT           - text or json (default: text)
"""
from typing import Optional

from pydantic import Field, ValidationError, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from pyenvoy.exceptions import ConfigurationError


class ExporterSettings(BaseSettings):
    """Exporter settings loaded from the environment"""

    envoy_address: str = Field(default="", alias="ENVOY_ADDRESS")
    envoy_serial: str = Field(default="", alias="ENVOY_SERIAL")
    envoy_jwt: Optional[str] = Field(default=None, alias="ENVOY_JWT")
    envoy_username: Optional[str] = Field(default=None, alias="ENVOY_USERNAME")
    envoy_password: Optional[str] = Field(default=None, alias="ENVOY_PASSWORD")
    envoy_timeout: float = Field(default=30, gt=0, alias="ENVOY_TIMEOUT")

    bind_address: str = Field(default="", alias="EXPORTER_BIND_ADDRESS")
    port: int = Field(default=9090, ge=1, le=65535, alias="EXPORTER_PORT")
    shutdown_grace: float = Field(default=30, ge=0, alias="SHUTDOWN_GRACE")

    auth_retries: int = Field(default=5, ge=1, alias="AUTH_RETRIES")
    auth_retry_delay: float = Field(default=5, ge=0, alias="AUTH_RETRY_DELAY")

    log_level: str = Field(default="info", alias="LOG_LEVEL")
    log_format: str = Field(default="text", alias="LOG_FORMAT")

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        populate_by_name=True,
        extra="ignore",
    )

    @model_validator(mode="after")
    def _check_required(self):
        if not self.envoy_address:
            raise ValueError("missing required configuration: ENVOY_ADDRESS")
        if not self.envoy_serial:
            raise ValueError("missing required configuration: ENVOY_SERIAL")
        if not self.envoy_jwt and not (self.envoy_username and self.envoy_password):
            raise ValueError("missing required configuration: ENVOY_JWT "
                             "(generate at https://entrez.enphaseenergy.com) or ENVOY_USERNAME/ENVOY_PASSWORD")
        return self

    def summary(self) -> dict:
        """Settings safe to log - secrets are masked"""
        out = self.model_dump(exclude={"envoy_jwt", "envoy_password"})
        out["envoy_jwt"] = '*' * 8 if self.envoy_jwt else None
        out["envoy_password"] = '*' * len(self.envoy_password) if self.envoy_password else None
        return out


def load_settings(env_file: Optional[str] = ".env", **overrides) -> ExporterSettings:
    try:
        return ExporterSettings(_env_file=env_file, **overrides)
    except ValidationError as exc:
        messages = "; ".join(err.get("msg", str(err)) for err in exc.errors())
        raise ConfigurationError(messages) from exc
