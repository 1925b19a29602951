"""
Midjourney Adapter for the image gateway.
Midjourney has no official API; requests go through a third-party relay.
"""
import logging
import threading
from typing import Optional

import requests

from .base import BaseAdapter, ErrorKind, Provider, TransformResult, bearer_headers, encode_image

logger = logging.getLogger(__name__)


class MidjourneyAdapter(BaseAdapter):
    """Midjourney adapter via the imagine relay endpoint."""

    provider = Provider.MIDJOURNEY

    API_URL = "https://api.midjourney.com/v1/imagine"
    STYLE = "ghibli"

    def _transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event],
    ) -> TransformResult:
        payload = {
            "image": encode_image(image_data),
            "prompt": prompt,
            "style": self.STYLE,
        }

        logger.info("Submitting Midjourney request...")
        response = requests.post(self.API_URL, headers=bearer_headers(api_key), json=payload, timeout=self.timeout)
        response.raise_for_status()

        body = response.json()
        image_url = body.get("imageUrl") if isinstance(body, dict) else None
        if not image_url:
            logger.error(f"Unexpected Midjourney response: {body!r:.200}")
            return TransformResult.fail(ErrorKind.UPSTREAM_ERROR, "Midjourney response did not include an image URL")

        return TransformResult.ok(image_url)
