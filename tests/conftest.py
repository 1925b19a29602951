"""Shared pytest fixtures for Ghibli Vision tests."""

import sys
from pathlib import Path
from typing import Callable, Optional
from unittest.mock import MagicMock

import pytest
import requests

from ghiblivision.gateway import GatewayConfig

# Add the Azure Functions directory to path so the worker can be imported
functions_path = Path(__file__).parent.parent / "functions"
if str(functions_path) not in sys.path:
    sys.path.insert(0, str(functions_path))

# Smallest valid PNG (1x1 transparent pixel)
SAMPLE_PNG = bytes.fromhex(
    "89504e470d0a1a0a0000000d4948445200000001000000010806000000"
    "1f15c4890000000d49444154789c6360000002000154a24f5d0000000049454e44ae426082"
)


@pytest.fixture
def sample_png() -> bytes:
    """A tiny PNG image."""
    return SAMPLE_PNG


@pytest.fixture
def config() -> GatewayConfig:
    """Gateway config with an operator key for every provider and fast polling."""
    return GatewayConfig(
        openai_api_key="op-openai",
        stability_api_key="op-stability",
        midjourney_api_key="op-midjourney",
        leonardo_api_key="op-leonardo",
        request_timeout=5.0,
        poll_interval=2.0,
        poll_max_attempts=30,
    )


@pytest.fixture
def empty_config() -> GatewayConfig:
    """Gateway config with no operator keys."""
    return GatewayConfig()


@pytest.fixture
def make_response() -> Callable[..., MagicMock]:
    """Factory for mocked requests.Response objects."""

    def _make(status_code: int = 200, json_data: Optional[object] = None, text: str = "") -> MagicMock:
        response = MagicMock(spec=requests.Response)
        response.status_code = status_code
        response.ok = status_code < 400
        response.text = text
        response.headers = {}
        if json_data is None:
            response.json.side_effect = ValueError("No JSON object could be decoded")
        else:
            response.json.return_value = json_data

        if status_code >= 400:
            response.raise_for_status.side_effect = requests.exceptions.HTTPError(
                f"{status_code} Error", response=response
            )
        else:
            response.raise_for_status.return_value = None
        return response

    return _make
