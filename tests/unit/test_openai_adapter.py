"""Unit tests for the OpenAI adapter."""

from dataclasses import replace
from unittest.mock import patch

import requests

from ghiblivision.gateway.clients import ErrorKind, OpenAIAdapter, OpenAIStrategy, Provider
from ghiblivision.gateway.clients.openai import MAX_IMAGE_BYTES, decoded_size

PROMPT = "Transform this image into Studio Ghibli style."


def _vision(content="A smiling woman with short black hair and a red scarf"):
    return {"choices": [{"message": {"role": "assistant", "content": content}}]}


class TestDecodedSize:
    """Tests for the base64 size estimate."""

    def test_matches_formula(self):
        assert decoded_size("") == 0
        assert decoded_size("QUJD") == 3
        assert decoded_size("QUI=") == 3
        assert decoded_size("Q") == 1


class TestDescribeThenGenerate:
    """Tests for the default two-stage strategy."""

    def test_success_returns_first_url(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        responses = [
            make_response(json_data=_vision()),
            make_response(json_data={"data": [{"url": "https://cdn.openai.test/a.png"}, {"url": "https://x"}]}),
        ]
        with patch("requests.post", side_effect=responses) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.success is True
        assert result.image_url == "https://cdn.openai.test/a.png"
        assert result.provider == Provider.OPENAI
        assert mock_post.call_count == 2

        describe_call, generate_call = mock_post.call_args_list
        assert describe_call.args[0] == OpenAIAdapter.CHAT_URL
        describe_payload = describe_call.kwargs["json"]
        assert describe_payload["model"] == "gpt-4o"
        assert describe_payload["max_tokens"] == 500
        image_part = describe_payload["messages"][1]["content"][1]
        assert image_part["image_url"]["url"].startswith("data:image/png;base64,")
        assert describe_call.kwargs["headers"]["Authorization"] == "Bearer sk-test"

        assert generate_call.args[0] == OpenAIAdapter.GENERATIONS_URL
        generate_payload = generate_call.kwargs["json"]
        assert generate_payload["model"] == "dall-e-3"
        assert generate_payload["n"] == 1
        assert generate_payload["size"] == "1024x1024"
        assert generate_payload["quality"] == "hd"
        assert "A smiling woman with short black hair" in generate_payload["prompt"]
        assert "watercolor" in generate_payload["prompt"]
        assert PROMPT in generate_payload["prompt"]

    def test_empty_description_falls_back(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        responses = [
            make_response(json_data=_vision(content=None)),
            make_response(json_data={"data": [{"url": "https://cdn.openai.test/a.png"}]}),
        ]
        with patch("requests.post", side_effect=responses) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.success is True
        assert "description: A person" in mock_post.call_args_list[1].kwargs["json"]["prompt"]

    def test_describe_failure_fails_adapter(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        error = make_response(status_code=401, json_data={"error": {"message": "Incorrect API key provided"}})
        with patch("requests.post", return_value=error) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-bad")

        assert result.success is False
        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert result.message == "OpenAI API error: Incorrect API key provided"
        # Generation is never attempted
        assert mock_post.call_count == 1

    def test_empty_data_is_upstream_empty(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        responses = [make_response(json_data=_vision()), make_response(json_data={"data": []})]
        with patch("requests.post", side_effect=responses):
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.error_kind == ErrorKind.UPSTREAM_EMPTY
        assert result.message == "OpenAI returned empty response"

    def test_b64_only_result_becomes_data_url(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        responses = [make_response(json_data=_vision()), make_response(json_data={"data": [{"b64_json": "QUJD"}]})]
        with patch("requests.post", side_effect=responses):
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.image_url == "data:image/png;base64,QUJD"

    def test_oversized_image_rejected_before_network(self, config):
        adapter = OpenAIAdapter(config)
        oversized = b"\x00" * (MAX_IMAGE_BYTES + 1)
        with patch("requests.post") as mock_post:
            result = adapter.transform(oversized, "image/png", PROMPT, "sk-test")

        assert result.error_kind == ErrorKind.VALIDATION_ERROR
        assert "20MB" in result.message
        mock_post.assert_not_called()

    def test_image_at_limit_is_accepted(self, config, make_response):
        adapter = OpenAIAdapter(config)
        # 3-byte multiple so the base64 estimate is exact
        at_limit = b"\x00" * (MAX_IMAGE_BYTES - MAX_IMAGE_BYTES % 3)
        responses = [make_response(json_data=_vision()), make_response(json_data={"data": [{"url": "https://u"}]})]
        with patch("requests.post", side_effect=responses):
            result = adapter.transform(at_limit, "image/png", PROMPT, "sk-test")

        assert result.success is True

    def test_server_error_is_not_retried(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        error = make_response(status_code=500, text="Internal Server Error")
        with patch("requests.post", return_value=error) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert result.message == "OpenAI API error: Internal Server Error"
        assert mock_post.call_count == 1

    def test_transport_timeout_is_upstream_error(self, config, sample_png):
        adapter = OpenAIAdapter(config)
        with patch("requests.post", side_effect=requests.exceptions.ReadTimeout("read timed out")) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert result.message == "OpenAI request timed out"
        assert mock_post.call_count == 1
        assert mock_post.call_args.kwargs["timeout"] == config.request_timeout

    def test_null_message_is_malformed(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(config)
        with patch("requests.post", return_value=make_response(json_data={"choices": [{"message": None}]})) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.error_kind == ErrorKind.UPSTREAM_ERROR
        assert result.message == "OpenAI returned a malformed response"
        # Generation is never attempted
        assert mock_post.call_count == 1


class TestDirectEdit:
    """Tests for the single-call edit strategy."""

    def test_edit_posts_multipart_once(self, config, sample_png, make_response):
        adapter = OpenAIAdapter(replace(config, openai_strategy=OpenAIStrategy.DIRECT_EDIT))
        response = make_response(json_data={"data": [{"url": "https://cdn.openai.test/edit.png"}]})
        with patch("requests.post", return_value=response) as mock_post:
            result = adapter.transform(sample_png, "image/png", PROMPT, "sk-test")

        assert result.image_url == "https://cdn.openai.test/edit.png"
        assert mock_post.call_count == 1
        call = mock_post.call_args
        assert call.args[0] == OpenAIAdapter.EDITS_URL
        assert call.kwargs["files"]["image"][1] == sample_png
        assert call.kwargs["data"]["prompt"] == PROMPT
        assert call.kwargs["data"]["size"] == "1024x1024"
