"""
Tests for the OpenAI-backed generative client.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock, patch

import pytest

from ai_client import GenerationError, GenerativeClient, GenerativeConfig


def chat_response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def openai_mock():
    with patch("ai_client.OpenAI") as openai_class:
        yield openai_class.return_value


class TestGenerativeClient:
    def test_requires_api_key(self, monkeypatch):
        monkeypatch.delenv("OPENAI_API_KEY", raising=False)
        with pytest.raises(GenerationError, match="OPENAI_API_KEY"):
            GenerativeClient(GenerativeConfig())

    def test_generate_json(self, openai_mock):
        openai_mock.chat.completions.create.return_value = chat_response('{"title": "Hi"}')
        client = GenerativeClient(GenerativeConfig(api_key="sk-test", text_model="test-model"))

        assert client.generate_json("prompt", system="be brief", temperature=0) == {"title": "Hi"}

        kwargs = openai_mock.chat.completions.create.call_args.kwargs
        assert kwargs["model"] == "test-model"
        assert kwargs["temperature"] == 0
        assert kwargs["response_format"] == {"type": "json_object"}
        assert kwargs["messages"][0] == {"role": "system", "content": "be brief"}

    @pytest.mark.parametrize("content", [None, "not json", "[1, 2]"])
    def test_generate_json_rejects_bad_output(self, openai_mock, content):
        openai_mock.chat.completions.create.return_value = chat_response(content)
        client = GenerativeClient(GenerativeConfig(api_key="sk-test"))
        with pytest.raises(GenerationError):
            client.generate_json("prompt")

    def test_generate_image_returns_data_uri(self, openai_mock):
        openai_mock.images.generate.return_value = SimpleNamespace(
            data=[SimpleNamespace(b64_json="aGVsbG8=", url=None)]
        )
        client = GenerativeClient(GenerativeConfig(api_key="sk-test"))
        assert client.generate_image("a mug") == "data:image/png;base64,aGVsbG8="

    def test_generate_image_without_data(self, openai_mock):
        openai_mock.images.generate.return_value = MagicMock(data=[])
        client = GenerativeClient(GenerativeConfig(api_key="sk-test"))
        assert client.generate_image("a mug") == ""
