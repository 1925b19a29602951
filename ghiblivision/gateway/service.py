"""
Image Gateway Service
Validates transformation requests and dispatches them to provider adapters.
"""
import logging
import threading
from dataclasses import dataclass
from typing import Dict, Optional

from .clients import BaseAdapter, ErrorKind, Provider, TransformResult, build_adapters
from .config import GatewayConfig
from .prompts import build_prompt

logger = logging.getLogger(__name__)


class GatewayError(Exception):
    """A request rejected before reaching any provider."""

    def __init__(self, kind: ErrorKind, message: str):
        super().__init__(message)
        self.kind = kind
        self.message = message


@dataclass
class TransformRequest:
    """A single image transformation request."""
    image_data: bytes
    provider: str
    prompt: str = ""
    api_key: Optional[str] = None
    mime_type: str = "image/png"


class ImageGateway:
    """
    Entry point for image transformations.
    Routes each request to the adapter for its provider and normalizes the outcome.
    """

    def __init__(self, config: GatewayConfig, adapters: Optional[Dict[Provider, BaseAdapter]] = None):
        """
        Initialize ImageGateway.

        Args:
            config: Operator keys and network limits
            adapters: Adapter per provider; built from config when omitted
        """
        self.config = config
        self.adapters = adapters if adapters is not None else build_adapters(config)

    def resolve_provider(self, name: Optional[str]) -> Provider:
        try:
            return Provider((name or "").strip().lower())
        except ValueError:
            raise GatewayError(ErrorKind.INVALID_PROVIDER, "Invalid AI provider")

    def resolve_api_key(self, provider: Provider, caller_key: Optional[str] = None) -> str:
        """Caller key if given, else the operator default for the provider."""
        key = (caller_key or "").strip() or self.config.default_key(provider)
        if not key:
            raise GatewayError(
                ErrorKind.MISSING_KEY,
                f"{provider.display_name} API key not found. Please provide your own API key.",
            )
        return key

    def transform(self, request: TransformRequest, cancel: Optional[threading.Event] = None) -> TransformResult:
        """
        Execute one transformation.

        All checks (image present, provider known, key resolvable) run before
        any network call. Failures come back as a failed TransformResult.

        Args:
            request: The transformation request
            cancel: Set by the caller to abandon a long-running poll

        Returns:
            TransformResult with the image URL or a classified failure
        """
        try:
            if not request.image_data:
                raise GatewayError(ErrorKind.VALIDATION_ERROR, "No image provided")
            provider = self.resolve_provider(request.provider)
            api_key = self.resolve_api_key(provider, request.api_key)
        except GatewayError as e:
            logger.warning(f"Rejected {request.provider!r} request: {e.message}")
            return TransformResult.fail(e.kind, e.message)

        adapter = self.adapters[provider]
        prompt = build_prompt(request.prompt)
        logger.info(f"Dispatching transformation to {provider.display_name} ({len(request.image_data)} bytes)")

        try:
            result = adapter.transform(request.image_data, request.mime_type, prompt, api_key, cancel=cancel)
        except Exception as e:
            logger.error(f"Unhandled error from {provider.display_name} adapter: {e}")
            result = TransformResult.fail(ErrorKind.UPSTREAM_ERROR, str(e) or f"{provider.display_name} request failed")

        result.provider = provider
        if result.success:
            logger.info(f"{provider.display_name} transformation succeeded")
        else:
            logger.warning(f"{provider.display_name} transformation failed ({result.error_kind.value}): {result.message}")
        return result
