"""
Base Adapter class for the image gateway.
"""
import base64
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from typing import Optional

import requests

logger = logging.getLogger(__name__)


class Provider(str, Enum):
    """Upstream image-generation providers."""
    OPENAI = "openai"
    STABILITY = "stability"
    MIDJOURNEY = "midjourney"
    LEONARDO = "leonardo"

    @property
    def display_name(self) -> str:
        return _DISPLAY_NAMES[self]


_DISPLAY_NAMES = {
    Provider.OPENAI: "OpenAI",
    Provider.STABILITY: "Stability AI",
    Provider.MIDJOURNEY: "Midjourney",
    Provider.LEONARDO: "Leonardo AI",
}


class ErrorKind(str, Enum):
    """Caller-visible failure categories."""
    MISSING_KEY = "missing_key"
    INVALID_PROVIDER = "invalid_provider"
    UPSTREAM_EMPTY = "upstream_empty"
    UPSTREAM_ERROR = "upstream_error"
    TIMEOUT = "timeout"
    VALIDATION_ERROR = "validation_error"


@dataclass
class TransformResult:
    """Result from an image transformation request."""
    image_url: Optional[str] = None
    error_kind: Optional[ErrorKind] = None
    message: str = ""
    provider: Optional[Provider] = None

    @property
    def success(self) -> bool:
        return self.image_url is not None

    @classmethod
    def ok(cls, image_url: str, provider: Optional[Provider] = None) -> "TransformResult":
        return cls(image_url=image_url, provider=provider)

    @classmethod
    def fail(cls, kind: ErrorKind, message: str, provider: Optional[Provider] = None) -> "TransformResult":
        return cls(error_kind=kind, message=message, provider=provider)


def to_data_url(payload: str, mime_type: str = "image/png") -> str:
    """Wrap a base64 payload in a data URL."""
    return f"data:{mime_type};base64,{payload}"


def encode_image(image_data: bytes) -> str:
    return base64.b64encode(image_data).decode("ascii")


def bearer_headers(api_key: str) -> dict:
    return {
        "Content-Type": "application/json",
        "Authorization": f"Bearer {api_key}",
    }


def upstream_message(response: Optional[requests.Response]) -> str:
    """
    Pull a human-readable message out of an upstream error response.

    Providers disagree on the shape: OpenAI nests it under error.message,
    Stability uses message, Leonardo uses error.
    """
    if response is None:
        return "no response"
    try:
        body = response.json()
    except ValueError:
        body = None

    if isinstance(body, dict):
        error = body.get("error")
        if isinstance(error, dict) and error.get("message"):
            return str(error["message"])
        if isinstance(error, str) and error:
            return error
        if body.get("message"):
            return str(body["message"])

    text = (response.text or "").strip()
    if text:
        return text[:200]
    return f"HTTP {response.status_code}"


class BaseAdapter:
    """Abstract base class for provider adapters."""

    provider: Provider

    def __init__(self, config):
        self.config = config
        self.timeout = config.request_timeout

    @property
    def display_name(self) -> str:
        return self.provider.display_name

    def transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event] = None,
    ) -> TransformResult:
        """
        Transform an image through the upstream provider.

        Never raises for upstream conditions: HTTP errors, transport errors and
        malformed bodies all come back as a failed TransformResult.
        """
        try:
            result = self._transform(image_data, mime_type, prompt, api_key, cancel)

        except requests.exceptions.HTTPError as e:
            message = upstream_message(e.response)
            logger.error(f"{self.display_name} API error: {message}")
            result = TransformResult.fail(ErrorKind.UPSTREAM_ERROR, f"{self.display_name} API error: {message}")

        except requests.exceptions.Timeout as e:
            logger.error(f"{self.display_name} request timed out: {e}")
            result = TransformResult.fail(ErrorKind.UPSTREAM_ERROR, f"{self.display_name} request timed out")

        except requests.exceptions.RequestException as e:
            logger.error(f"{self.display_name} request failed: {e}")
            result = TransformResult.fail(ErrorKind.UPSTREAM_ERROR, f"{self.display_name} request failed: {e}")

        except (AttributeError, KeyError, IndexError, TypeError, ValueError) as e:
            logger.error(f"{self.display_name} returned a malformed response: {e!r}")
            result = TransformResult.fail(
                ErrorKind.UPSTREAM_ERROR, f"{self.display_name} returned a malformed response"
            )

        result.provider = self.provider
        return result

    def _transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event],
    ) -> TransformResult:
        """
        Call the upstream API and build the result.
        Must be implemented by subclasses.

        Args:
            image_data: Input image as bytes
            mime_type: Declared MIME type of the upload
            prompt: Full transformation prompt
            api_key: Resolved key for this provider
            cancel: Set by the caller when the request is abandoned

        Returns:
            TransformResult with the image URL or a failure
        """
        raise NotImplementedError("Subclasses must implement _transform")
