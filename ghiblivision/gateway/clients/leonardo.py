"""
Leonardo AI Adapter for the image gateway.

Leonardo generations are asynchronous: the image is uploaded as an init image,
a generation is submitted against it, and the generation is polled until it
completes or the attempt ceiling is reached.
"""
import logging
import threading
import time
from dataclasses import dataclass
from typing import Callable, Optional

import requests

from .base import BaseAdapter, ErrorKind, Provider, TransformResult, bearer_headers, encode_image, to_data_url

logger = logging.getLogger(__name__)


@dataclass
class PollState:
    """Progress of one generation's status polling."""
    generation_id: str
    max_attempts: int = 30
    interval: float = 2.0
    attempt: int = 0

    @property
    def exhausted(self) -> bool:
        return self.attempt >= self.max_attempts


class LeonardoAdapter(BaseAdapter):
    """Leonardo AI adapter using an anime-oriented model."""

    provider = Provider.LEONARDO

    API_BASE = "https://cloud.leonardo.ai/api/rest/v1"
    INIT_IMAGE_URL = f"{API_BASE}/init-image"
    GENERATIONS_URL = f"{API_BASE}/generations"

    # Anime style model
    MODEL_ID = "e316348f-7773-490e-adcd-46757c738eb7"
    WIDTH = 1024
    HEIGHT = 1024

    STATUS_COMPLETE = "COMPLETE"
    STATUS_FAILED = "FAILED"

    def __init__(self, config, sleep: Callable[[float], None] = time.sleep):
        super().__init__(config)
        self.poll_interval = config.poll_interval
        self.poll_max_attempts = config.poll_max_attempts
        self._sleep = sleep

    def _transform(
        self,
        image_data: bytes,
        mime_type: str,
        prompt: str,
        api_key: str,
        cancel: Optional[threading.Event],
    ) -> TransformResult:
        headers = bearer_headers(api_key)

        image_id = self.upload_init_image(image_data, mime_type, headers)
        generation_id = self.submit_generation(image_id, prompt, headers)

        state = PollState(
            generation_id=generation_id,
            max_attempts=self.poll_max_attempts,
            interval=self.poll_interval,
        )
        return self.poll(state, headers, cancel)

    def upload_init_image(self, image_data: bytes, mime_type: str, headers: dict) -> str:
        payload = {"image": to_data_url(encode_image(image_data), mime_type or "image/png")}

        logger.info("Uploading init image to Leonardo AI...")
        response = requests.post(self.INIT_IMAGE_URL, headers=headers, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()["id"]

    def submit_generation(self, image_id: str, prompt: str, headers: dict) -> str:
        payload = {
            "prompt": prompt,
            "imageId": image_id,
            "modelId": self.MODEL_ID,
            "width": self.WIDTH,
            "height": self.HEIGHT,
            "num_images": 1,
        }

        logger.info(f"Submitting Leonardo AI generation for init image {image_id}...")
        response = requests.post(self.GENERATIONS_URL, headers=headers, json=payload, timeout=self.timeout)
        response.raise_for_status()
        return response.json()["generationId"]

    def poll(self, state: PollState, headers: dict, cancel: Optional[threading.Event] = None) -> TransformResult:
        """
        Poll the generation until COMPLETE, FAILED or the attempt ceiling.

        Each non-complete poll is followed by one interval of sleep, so an
        exhausted run takes max_attempts * interval seconds.
        """
        url = f"{self.GENERATIONS_URL}/{state.generation_id}"
        auth = {"Authorization": headers["Authorization"]}

        while not state.exhausted:
            if cancel is not None and cancel.is_set():
                logger.info(f"Leonardo AI polling cancelled for {state.generation_id}")
                return TransformResult.fail(ErrorKind.TIMEOUT, "Leonardo AI generation cancelled")

            response = requests.get(url, headers=auth, timeout=self.timeout)
            response.raise_for_status()
            state.attempt += 1

            generation = response.json()["generations_by_pk"]
            status = generation.get("status")

            if status == self.STATUS_COMPLETE:
                images = generation.get("generated_images") or []
                if not images:
                    return TransformResult.fail(ErrorKind.UPSTREAM_EMPTY, "Leonardo AI returned no images")
                return TransformResult.ok(images[0]["url"])

            if status == self.STATUS_FAILED:
                return TransformResult.fail(ErrorKind.UPSTREAM_ERROR, "Leonardo AI generation failed")

            logger.debug(f"Leonardo AI generation {state.generation_id} is {status} (attempt {state.attempt})")
            self._sleep(state.interval)

        logger.warning(f"Leonardo AI generation {state.generation_id} timed out after {state.attempt} attempts")
        return TransformResult.fail(ErrorKind.TIMEOUT, "Leonardo AI generation timed out")
