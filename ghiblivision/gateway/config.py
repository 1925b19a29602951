"""
Gateway configuration.

Operator default keys and network limits, read from the environment once
and passed to the gateway and its adapters.

Environment Variables:
    OPENAI_API_KEY, STABILITY_API_KEY, MIDJOURNEY_API_KEY, LEONARDO_API_KEY:
        Operator default keys, used when the caller supplies none
    OPENAI_STRATEGY: describe_then_generate (default) or direct_edit
    GATEWAY_REQUEST_TIMEOUT: Per-call HTTP timeout in seconds (default: 60)
    LEONARDO_POLL_INTERVAL: Seconds between status polls (default: 2.0)
    LEONARDO_POLL_MAX_ATTEMPTS: Poll ceiling (default: 30)
"""
import logging
import os
from dataclasses import dataclass
from typing import List, Optional

from .clients.base import Provider
from .clients.openai import OpenAIStrategy

logger = logging.getLogger(__name__)


def _env_number(name: str, default, cast):
    raw = os.getenv(name)
    if raw is None or raw == "":
        return default
    try:
        return cast(raw)
    except ValueError:
        logger.warning(f"Invalid value for {name}: {raw!r}, using default {default}")
        return default


@dataclass(frozen=True)
class GatewayConfig:
    """Read-only settings shared by every adapter."""
    openai_api_key: Optional[str] = None
    stability_api_key: Optional[str] = None
    midjourney_api_key: Optional[str] = None
    leonardo_api_key: Optional[str] = None
    openai_strategy: OpenAIStrategy = OpenAIStrategy.DESCRIBE_THEN_GENERATE
    request_timeout: float = 60.0
    poll_interval: float = 2.0
    poll_max_attempts: int = 30

    # Environment variable names per provider
    ENV_API_KEYS = {
        Provider.OPENAI: "OPENAI_API_KEY",
        Provider.STABILITY: "STABILITY_API_KEY",
        Provider.MIDJOURNEY: "MIDJOURNEY_API_KEY",
        Provider.LEONARDO: "LEONARDO_API_KEY",
    }

    @classmethod
    def from_env(cls) -> "GatewayConfig":
        strategy_name = os.getenv("OPENAI_STRATEGY", OpenAIStrategy.DESCRIBE_THEN_GENERATE.value)
        try:
            strategy = OpenAIStrategy(strategy_name.strip().lower())
        except ValueError:
            logger.warning(f"Unknown OPENAI_STRATEGY {strategy_name!r}, using describe_then_generate")
            strategy = OpenAIStrategy.DESCRIBE_THEN_GENERATE

        return cls(
            openai_api_key=os.getenv(cls.ENV_API_KEYS[Provider.OPENAI]) or None,
            stability_api_key=os.getenv(cls.ENV_API_KEYS[Provider.STABILITY]) or None,
            midjourney_api_key=os.getenv(cls.ENV_API_KEYS[Provider.MIDJOURNEY]) or None,
            leonardo_api_key=os.getenv(cls.ENV_API_KEYS[Provider.LEONARDO]) or None,
            openai_strategy=strategy,
            request_timeout=_env_number("GATEWAY_REQUEST_TIMEOUT", 60.0, float),
            poll_interval=_env_number("LEONARDO_POLL_INTERVAL", 2.0, float),
            poll_max_attempts=_env_number("LEONARDO_POLL_MAX_ATTEMPTS", 30, int),
        )

    def default_key(self, provider: Provider) -> Optional[str]:
        """Operator default key for a provider, if configured."""
        return {
            Provider.OPENAI: self.openai_api_key,
            Provider.STABILITY: self.stability_api_key,
            Provider.MIDJOURNEY: self.midjourney_api_key,
            Provider.LEONARDO: self.leonardo_api_key,
        }[provider]

    def is_configured(self, provider: Provider) -> bool:
        return bool(self.default_key(provider))

    def get_missing_config(self) -> List[str]:
        """Return env var names of providers without an operator key."""
        return [self.ENV_API_KEYS[p] for p in Provider if not self.is_configured(p)]
