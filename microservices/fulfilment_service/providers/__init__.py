"""
Fulfilment provider adapters

Adapters are looked up by FulfilmentProvider rather than selected with
conditionals, so adding a provider means adding one entry here.
"""

from typing import Dict, Optional

from core.config import ProviderConfig

from ..models import FulfilmentProvider
from .base import ProviderAdapter, SubmissionContext
from .blurb import BlurbProvider
from .printful import PrintfulProvider

ProviderRegistry = Dict[FulfilmentProvider, ProviderAdapter]


def build_provider_registry(config: Optional[ProviderConfig] = None) -> ProviderRegistry:
    """Create one adapter per provider from configuration"""
    config = config or ProviderConfig.from_env()
    return {
        FulfilmentProvider.PRINTFUL: PrintfulProvider(
            api_key=config.printful.api_key,
            webhook_secret=config.printful.webhook_secret,
            api_url=config.printful.api_url,
            auto_confirm=config.printful.auto_confirm,
            timeout=config.printful.timeout,
        ),
        FulfilmentProvider.BLURB: BlurbProvider(
            api_key=config.blurb.api_key,
            webhook_secret=config.blurb.webhook_secret,
            api_url=config.blurb.api_url,
            timeout=config.blurb.timeout,
        ),
    }


__all__ = [
    "ProviderAdapter",
    "ProviderRegistry",
    "SubmissionContext",
    "PrintfulProvider",
    "BlurbProvider",
    "build_provider_registry",
]
