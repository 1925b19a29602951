"""
Stability AI Adapter for the image gateway.
Uses the Stable Diffusion XL image-to-image endpoint.
"""
import io
import logging
import threading
import time
from typing import Optional

import requests

from .base import BaseAdapter, ErrorKind, Provider, TransformResult, to_data_url

logger = logging.getLogger(__name__)


class StabilityAdapter(BaseAdapter):
    """Stability AI adapter using Stable Diffusion XL."""

    provider = Provider.STABILITY

    API_URL = "https://api.stability.ai/v1/generation/stable-diffusion-xl-1024-v1-0/image-to-image"

    def _transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event],
    ) -> TransformResult:
        headers = {
            "Accept": "application/json",
            "Authorization": f"Bearer {api_key}"
        }

        files = {
            "init_image": ("init_image", io.BytesIO(image_data), mime_type or "image/png")
        }

        data = {
            "text_prompts[0][text]": prompt,
            "text_prompts[0][weight]": 1,
            "cfg_scale": 7,
            "samples": 1,
            "steps": 30,
            "style_preset": "anime",
        }

        start_time = time.time()
        logger.info("Submitting Stability AI request...")
        response = requests.post(self.API_URL, headers=headers, files=files, data=data, timeout=self.timeout)
        logger.info(f"Stability AI status: {response.status_code}, latency: {time.time() - start_time:.2f}s")
        response.raise_for_status()

        result = response.json()
        for artifact in result.get("artifacts", []):
            if artifact.get("finishReason") == "CONTENT_FILTERED":
                logger.warning("Stability AI: Content Filtered")
                return TransformResult.fail(ErrorKind.UPSTREAM_EMPTY, "Stability AI blocked the image: content filtered")

            # Stability answers with raw base64; callers always get a URL
            return TransformResult.ok(to_data_url(artifact["base64"]))

        return TransformResult.fail(ErrorKind.UPSTREAM_EMPTY, "Stability AI returned no artifacts")
