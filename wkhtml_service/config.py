"""
Service Configuration Module

Centralized configuration management with Pydantic validation.
Settings are read once at startup (environment, then CLI overrides) and
passed explicitly to the app factory; nothing mutates them afterwards.
"""

import logging
import re
import shutil
from functools import lru_cache
from typing import Optional, Tuple, Union

from pydantic import Field, field_validator
from pydantic_settings import BaseSettings

logger = logging.getLogger(__name__)

_DURATION_RE = re.compile(r"^\s*(\d+(?:\.\d+)?)\s*(ms|s|m|h)?\s*$")
_DURATION_UNITS = {"ms": 0.001, "s": 1.0, "m": 60.0, "h": 3600.0}


def parse_duration(value: Union[str, int, float]) -> float:
    """
    Parse a duration into seconds.

    Accepts plain numbers (seconds) and Go-style suffixed strings.

    Example:
        >>> parse_duration("500ms")
        0.5
        >>> parse_duration("1m")
        60.0
    """
    if isinstance(value, (int, float)):
        return float(value)
    match = _DURATION_RE.match(value)
    if not match:
        raise ValueError(f"invalid duration: {value!r}")
    amount, unit = match.groups()
    return float(amount) * _DURATION_UNITS[unit or "s"]


class ServiceSettings(BaseSettings):
    """
    Conversion service configuration with validation.

    All settings can be overridden via environment variables.
    Validation happens at startup to fail fast on misconfiguration.
    """

    # === Rendering binaries ===
    wkhtmltopdf: str = Field(
        default="wkhtmltopdf",
        min_length=1,
        description="Path to wkhtmltopdf binary"
    )
    wkhtmltoimage: str = Field(
        default="wkhtmltoimage",
        min_length=1,
        description="Path to wkhtmltoimage binary"
    )

    # === HTTP server ===
    web_address: str = Field(
        default=":8080",
        description="Address to listen on, [host]:port"
    )
    web_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Request timeout in seconds"
    )
    web_read_timeout: float = Field(
        default=5.0,
        gt=0,
        description="Read timeout in seconds"
    )
    web_write_timeout: float = Field(
        default=10.0,
        gt=0,
        description="Write timeout in seconds"
    )
    graceful_shutdown: float = Field(
        default=10.0,
        ge=0,
        description="Grace period for in-flight requests on shutdown, in seconds"
    )

    # === Runtime ===
    debug: bool = Field(default=False, description="Debug logging")
    temp_dir: Optional[str] = Field(
        default=None,
        description="Directory for temporary artifacts (system default if unset)"
    )

    @field_validator(
        "web_timeout", "web_read_timeout", "web_write_timeout", "graceful_shutdown",
        mode="before",
    )
    @classmethod
    def validate_duration(cls, v):
        """Allow Go-style duration strings such as '10s' or '500ms'."""
        return parse_duration(v)

    @field_validator("web_address")
    @classmethod
    def validate_address(cls, v: str) -> str:
        """Address must end in a numeric port."""
        host, sep, port = v.rpartition(":")
        if not sep or not port.isdigit() or not 0 < int(port) < 65536:
            raise ValueError(f"Invalid listen address: {v}")
        return v

    @property
    def listen(self) -> Tuple[str, int]:
        """Split web_address into (host, port); empty host binds all interfaces."""
        host, _, port = self.web_address.rpartition(":")
        host = host.strip("[]") or "0.0.0.0"
        return host, int(port)

    def missing_binaries(self) -> list:
        """Configured binaries that cannot be resolved on PATH."""
        return [
            binary for binary in (self.wkhtmltopdf, self.wkhtmltoimage)
            if shutil.which(binary) is None
        ]

    class Config:
        env_prefix = ""  # No prefix, use exact env var names
        case_sensitive = False  # WEB_TIMEOUT = web_timeout


@lru_cache()
def get_settings() -> ServiceSettings:
    """
    Get cached settings instance built from the environment.

    Use this only where no explicit settings object was provided.
    """
    return ServiceSettings()


def validate_config_on_startup(settings: ServiceSettings) -> None:
    """
    Log the loaded configuration and warn about unusable binaries.

    Missing binaries are not fatal: /healthz must keep answering and the
    conversion endpoints report the failure per request.
    """
    for binary in settings.missing_binaries():
        logger.warning(f"Rendering binary not found on PATH: {binary}")

    host, port = settings.listen
    logger.info("Configuration loaded:")
    logger.info(f"  wkhtmltopdf={settings.wkhtmltopdf}")
    logger.info(f"  wkhtmltoimage={settings.wkhtmltoimage}")
    logger.info(f"  address={host}:{port}")
    logger.info(
        f"  timeout={settings.web_timeout}s read={settings.web_read_timeout}s "
        f"write={settings.web_write_timeout}s"
    )
    logger.info(f"  graceful_shutdown={settings.graceful_shutdown}s debug={settings.debug}")
