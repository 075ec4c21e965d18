"""
Configuration Manager

Per-service configuration entry point. Wraps the modular env-driven configs in
core.config and adds the service's own runtime settings (host, port, debug).

Usage:
    from core.config_manager import ConfigManager

    config_manager = ConfigManager("fulfilment_service")
    config = config_manager.get_service_config()
    host, port = config_manager.discover_service(
        service_name="postgres_service",
        default_host="localhost",
        default_port=5432,
        env_host_key="POSTGRES_HOST",
        env_port_key="POSTGRES_PORT",
    )
"""

import logging
import os
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional, Tuple

from core.config import FulfilmentSettings, reload_settings

logger = logging.getLogger(__name__)


class Environment(str, Enum):
    DEVELOPMENT = "development"
    TESTING = "testing"
    STAGING = "staging"
    PRODUCTION = "production"


def _environment() -> Environment:
    raw = (os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")).lower()
    aliases = {"dev": "development", "test": "testing", "prod": "production"}
    try:
        return Environment(aliases.get(raw, raw))
    except ValueError:
        return Environment.DEVELOPMENT


@dataclass
class ServiceSettings:
    """Runtime settings for a single service process"""
    service_name: str
    service_host: str = "0.0.0.0"
    service_port: int = 8254
    debug: bool = False
    log_level: str = "INFO"
    environment: Environment = Environment.DEVELOPMENT


class ConfigManager:
    """Configuration access for one service"""

    def __init__(self, service_name: str, settings: Optional[FulfilmentSettings] = None):
        self.service_name = service_name
        self.environment = _environment()
        self.settings = settings or reload_settings()

    def get_service_config(self) -> ServiceSettings:
        """Get runtime settings for this service"""
        return ServiceSettings(
            service_name=self.service_name,
            service_host=os.getenv("HOST", "0.0.0.0"),
            service_port=int(os.getenv("PORT", "8254")),
            debug=os.getenv("DEBUG", "false").lower() == "true",
            log_level=self.settings.logging.log_level,
            environment=self.environment,
        )

    def discover_service(
        self,
        service_name: str,
        default_host: str,
        default_port: int,
        env_host_key: Optional[str] = None,
        env_port_key: Optional[str] = None,
    ) -> Tuple[str, int]:
        """
        Resolve host/port for an infrastructure dependency.

        Priority: explicit environment variables, then the supplied defaults.
        """
        host = os.getenv(env_host_key) if env_host_key else None
        port = os.getenv(env_port_key) if env_port_key else None

        resolved_host = host or default_host
        try:
            resolved_port = int(port) if port else default_port
        except ValueError:
            logger.warning(f"Invalid port for {service_name}: {port!r}, using {default_port}")
            resolved_port = default_port

        logger.debug(f"Resolved {service_name} at {resolved_host}:{resolved_port}")
        return resolved_host, resolved_port

    def get(self, key: str, default: Any = None) -> Any:
        """Read a raw environment value"""
        return os.getenv(key, default)

    def print_config_summary(self) -> None:
        """Log a summary of the effective configuration (secrets redacted)"""
        providers = self.settings.providers
        logger.info(f"Configuration for {self.service_name} ({self.environment.value})")
        logger.info(f"  PostgreSQL: {self.settings.infra.postgres_host}:{self.settings.infra.postgres_port}")
        logger.info(f"  NATS: {self.settings.infra.resolved_nats_url} (enabled={self.settings.infra.nats_enabled})")
        logger.info(f"  Printful configured: {bool(providers.printful.api_key)}")
        logger.info(f"  Blurb configured: {bool(providers.blurb.api_key)}")
