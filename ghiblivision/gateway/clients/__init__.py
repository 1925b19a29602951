"""
Image Gateway Provider Adapters
"""
from typing import Dict

from .base import BaseAdapter, ErrorKind, Provider, TransformResult
from .leonardo import LeonardoAdapter
from .midjourney import MidjourneyAdapter
from .openai import OpenAIAdapter, OpenAIStrategy
from .stability import StabilityAdapter

ADAPTERS = {
    Provider.OPENAI: OpenAIAdapter,
    Provider.STABILITY: StabilityAdapter,
    Provider.MIDJOURNEY: MidjourneyAdapter,
    Provider.LEONARDO: LeonardoAdapter,
}


def get_adapter(provider: Provider, config) -> BaseAdapter:
    """
    Factory function to get the adapter for a provider.

    Args:
        provider: One of the Provider members
        config: GatewayConfig shared by the adapters

    Returns:
        BaseAdapter instance
    """
    return ADAPTERS[Provider(provider)](config)


def build_adapters(config) -> Dict[Provider, BaseAdapter]:
    """One adapter instance per provider."""
    return {provider: get_adapter(provider, config) for provider in Provider}


__all__ = [
    "ADAPTERS",
    "BaseAdapter",
    "ErrorKind",
    "LeonardoAdapter",
    "MidjourneyAdapter",
    "OpenAIAdapter",
    "OpenAIStrategy",
    "Provider",
    "StabilityAdapter",
    "TransformResult",
    "build_adapters",
    "get_adapter",
]
