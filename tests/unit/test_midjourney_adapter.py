"""Unit tests for the Midjourney adapter."""

import base64
from unittest.mock import patch

from ghiblivision.gateway.clients import ErrorKind, MidjourneyAdapter, Provider


class TestMidjourneyAdapter:
    """Tests for MidjourneyAdapter."""

    def test_success_returns_image_url(self, config, sample_png, make_response):
        adapter = MidjourneyAdapter(config)
        response = make_response(json_data={"imageUrl": "https://cdn.mj.test/out.png"})
        with patch("requests.post", return_value=response) as mock_post:
            result = adapter.transform(sample_png, "image/png", "ghibli please", "mj-key")

        assert result.success is True
        assert result.image_url == "https://cdn.mj.test/out.png"
        assert result.provider == Provider.MIDJOURNEY

        call = mock_post.call_args
        assert call.args[0] == MidjourneyAdapter.API_URL
        assert call.kwargs["headers"]["Authorization"] == "Bearer mj-key"
        payload = call.kwargs["json"]
        assert payload["style"] == "ghibli"
        assert payload["prompt"] == "ghibli please"
        assert base64.b64decode(payload["image"]) == sample_png

    def test_missing_image_url_is_upstream_error(self, config, sample_png, make_response):
        adapter = MidjourneyAdapter(config)
        with patch("requests.post", return_value=make_response(json_data={"status": "queued"})):
            result = adapter.transform(sample_png, "image/png", "p", "mj-key")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR

    def test_non_json_body_is_upstream_error(self, config, sample_png, make_response):
        adapter = MidjourneyAdapter(config)
        with patch("requests.post", return_value=make_response(text="<html>gateway</html>")):
            result = adapter.transform(sample_png, "image/png", "p", "mj-key")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert "malformed" in result.message

    def test_server_error_is_single_call(self, config, sample_png, make_response):
        adapter = MidjourneyAdapter(config)
        with patch("requests.post", return_value=make_response(status_code=502, text="Bad Gateway")) as mock_post:
            result = adapter.transform(sample_png, "image/png", "p", "mj-key")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert result.message == "Midjourney API error: Bad Gateway"
        assert mock_post.call_count == 1

    def test_non_object_body_is_upstream_error(self, config, sample_png, make_response):
        adapter = MidjourneyAdapter(config)
        with patch("requests.post", return_value=make_response(json_data=["https://mj.test/a.png"])):
            result = adapter.transform(sample_png, "image/png", "p", "mj-key")

        assert result.success is False
        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
