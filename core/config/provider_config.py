#!/usr/bin/env python3
"""Fulfilment provider configuration

Credentials and endpoints for the external print-on-demand providers.
A provider with no API key is treated as disabled, not as a startup failure.
"""
import os
from dataclasses import dataclass, field
from typing import Optional

def _bool(val: str) -> bool:
    return val.lower() == "true"

def _float(val: str, default: float) -> float:
    try:
        return float(val) if val else default
    except ValueError:
        return default


@dataclass
class PrintfulConfig:
    """Printful (merchandise) settings"""
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_url: str = "https://api.printful.com"
    auto_confirm: bool = True
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> 'PrintfulConfig':
        return cls(
            api_key=os.getenv("PRINTFUL_API_KEY") or None,
            webhook_secret=os.getenv("PRINTFUL_WEBHOOK_SECRET") or None,
            api_url=os.getenv("PRINTFUL_API_URL", "https://api.printful.com"),
            auto_confirm=_bool(os.getenv("PRINTFUL_AUTO_CONFIRM", "true")),
            timeout=_float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"), 30.0),
        )


@dataclass
class BlurbConfig:
    """Blurb (printed books) settings"""
    api_key: Optional[str] = None
    webhook_secret: Optional[str] = None
    api_url: str = "https://api.blurb.com/v1"
    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> 'BlurbConfig':
        return cls(
            api_key=os.getenv("BLURB_API_KEY") or None,
            webhook_secret=os.getenv("BLURB_WEBHOOK_SECRET") or None,
            api_url=os.getenv("BLURB_API_URL", "https://api.blurb.com/v1"),
            timeout=_float(os.getenv("PROVIDER_TIMEOUT_SECONDS", "30"), 30.0),
        )


@dataclass
class ProviderConfig:
    """All fulfilment provider settings"""
    printful: PrintfulConfig = field(default_factory=PrintfulConfig)
    blurb: BlurbConfig = field(default_factory=BlurbConfig)

    @classmethod
    def from_env(cls) -> 'ProviderConfig':
        """Load provider config from environment variables"""
        return cls(
            printful=PrintfulConfig.from_env(),
            blurb=BlurbConfig.from_env(),
        )
