"""
OpenAI Adapter for the image gateway.

Two strategies:
    describe_then_generate: GPT-4o describes the subject, DALL-E 3 renders
        a Ghibli version from that description (default)
    direct_edit: a single images/edits call with the uploaded image
"""
import logging
import math
import threading
from enum import Enum
from typing import Optional

import requests

from .base import (
    BaseAdapter,
    ErrorKind,
    Provider,
    TransformResult,
    bearer_headers,
    encode_image,
    to_data_url,
)
from ..prompts import (
    DESCRIBE_SYSTEM_PROMPT,
    DESCRIBE_USER_PROMPT,
    FALLBACK_DESCRIPTION,
    build_enhanced_prompt,
)

logger = logging.getLogger(__name__)

# OpenAI rejects payloads above 20MB
MAX_IMAGE_BYTES = 20 * 1024 * 1024


class OpenAIStrategy(str, Enum):
    DESCRIBE_THEN_GENERATE = "describe_then_generate"
    DIRECT_EDIT = "direct_edit"


def decoded_size(base64_data: str) -> int:
    """Size in bytes of the payload a base64 string decodes to."""
    return math.ceil(len(base64_data) * 3 / 4)


class OpenAIAdapter(BaseAdapter):
    """OpenAI adapter using GPT-4o vision and DALL-E."""

    provider = Provider.OPENAI

    API_BASE = "https://api.openai.com/v1"
    CHAT_URL = f"{API_BASE}/chat/completions"
    GENERATIONS_URL = f"{API_BASE}/images/generations"
    EDITS_URL = f"{API_BASE}/images/edits"

    VISION_MODEL = "gpt-4o"
    VISION_MAX_TOKENS = 500
    IMAGE_MODEL = "dall-e-3"
    EDIT_MODEL = "dall-e-2"
    IMAGE_SIZE = "1024x1024"
    IMAGE_QUALITY = "hd"

    def __init__(self, config):
        super().__init__(config)
        self.strategy = config.openai_strategy

    def _transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event],
    ) -> TransformResult:
        base64_data = encode_image(image_data)
        if decoded_size(base64_data) > MAX_IMAGE_BYTES:
            return TransformResult.fail(
                ErrorKind.VALIDATION_ERROR,
                "Image size exceeds 20MB limit. Please use a smaller image.",
            )

        if self.strategy == OpenAIStrategy.DIRECT_EDIT:
            response = self._edit(image_data, mime_type, prompt, api_key)
        else:
            description = self.describe(base64_data, mime_type, api_key)
            response = self._generate(build_enhanced_prompt(description, prompt), api_key)

        data = response.get("data") or []
        if not data:
            logger.warning("OpenAI returned no images")
            return TransformResult.fail(ErrorKind.UPSTREAM_EMPTY, "OpenAI returned empty response")

        item = data[0]
        if item.get("url"):
            return TransformResult.ok(item["url"])
        if item.get("b64_json"):
            return TransformResult.ok(to_data_url(item["b64_json"]))
        return TransformResult.fail(ErrorKind.UPSTREAM_EMPTY, "OpenAI returned empty response")

    def describe(self, base64_data: str, mime_type: str, api_key: str) -> str:
        """Ask the vision model for a description of the subject."""
        payload = {
            "model": self.VISION_MODEL,
            "messages": [
                {"role": "system", "content": DESCRIBE_SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": [
                        {"type": "text", "text": DESCRIBE_USER_PROMPT},
                        {"type": "image_url", "image_url": {"url": to_data_url(base64_data, mime_type)}},
                    ],
                },
            ],
            "max_tokens": self.VISION_MAX_TOKENS,
        }

        logger.info(f"Requesting image description from {self.VISION_MODEL}...")
        response = requests.post(self.CHAT_URL, headers=bearer_headers(api_key), json=payload, timeout=self.timeout)
        response.raise_for_status()

        choices = response.json().get("choices") or []
        content = choices[0].get("message", {}).get("content") if choices else None
        return content or FALLBACK_DESCRIPTION

    def _generate(self, prompt: str, api_key: str) -> dict:
        payload = {
            "model": self.IMAGE_MODEL,
            "prompt": prompt,
            "n": 1,
            "size": self.IMAGE_SIZE,
            "quality": self.IMAGE_QUALITY,
        }

        logger.info(f"Submitting {self.IMAGE_MODEL} generation request...")
        response = requests.post(
            self.GENERATIONS_URL, headers=bearer_headers(api_key), json=payload, timeout=self.timeout
        )
        response.raise_for_status()
        return response.json()

    def _edit(self, image_data: bytes, mime_type: str, prompt: str, api_key: str) -> dict:
        headers = {"Authorization": f"Bearer {api_key}"}
        files = {"image": ("image.png", image_data, mime_type or "image/png")}
        data = {
            "model": self.EDIT_MODEL,
            "prompt": prompt,
            "n": 1,
            "size": self.IMAGE_SIZE,
        }

        logger.info(f"Submitting {self.EDIT_MODEL} edit request...")
        response = requests.post(self.EDITS_URL, headers=headers, files=files, data=data, timeout=self.timeout)
        response.raise_for_status()
        return response.json()
