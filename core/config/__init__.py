#!/usr/bin/env python3
"""Modular configuration system for the fulfilment platform

Configuration hierarchy:
- infra_config: Infrastructure services (PostgreSQL, NATS)
- service_config: Peer services (notification, document)
- provider_config: External fulfilment providers (Printful, Blurb)
- logging_config: Logging configuration
"""
import os
from dataclasses import dataclass, field

from dotenv import load_dotenv

from .logging_config import LoggingConfig
from .infra_config import InfraConfig
from .service_config import ServiceConfig
from .provider_config import ProviderConfig, PrintfulConfig, BlurbConfig

# Load environment file based on ENV
env = os.getenv("ENV") or os.getenv("ENVIRONMENT", "development")
env_files = {
    "development": "deployment/environments/dev.env",
    "dev": "deployment/environments/dev.env",
    "testing": "deployment/environments/test.env",
    "test": "deployment/environments/test.env",
    "staging": "deployment/environments/staging.env",
    "production": "deployment/environments/production.env",
}
env_file = env_files.get(env, "deployment/environments/dev.env")
load_dotenv(env_file, override=False)


@dataclass
class FulfilmentSettings:
    """Aggregate settings for the fulfilment platform"""
    infra: InfraConfig = field(default_factory=InfraConfig)
    services: ServiceConfig = field(default_factory=ServiceConfig)
    providers: ProviderConfig = field(default_factory=ProviderConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)

    @classmethod
    def from_env(cls) -> 'FulfilmentSettings':
        return cls(
            infra=InfraConfig.from_env(),
            services=ServiceConfig.from_env(),
            providers=ProviderConfig.from_env(),
            logging=LoggingConfig.from_env(),
        )


# Create global settings instance
settings = FulfilmentSettings.from_env()

def get_settings() -> FulfilmentSettings:
    """Get global settings instance"""
    return settings

def reload_settings() -> FulfilmentSettings:
    """Reload settings from environment"""
    global settings
    settings = FulfilmentSettings.from_env()
    return settings

__all__ = [
    # Main config
    'FulfilmentSettings',
    'get_settings',
    'reload_settings',
    'settings',
    # Sub-configs
    'LoggingConfig',
    'InfraConfig',
    'ServiceConfig',
    'ProviderConfig',
    'PrintfulConfig',
    'BlurbConfig',
]
