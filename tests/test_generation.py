"""
Tests for the generation service using a mocked OpenAI client.
"""
from types import SimpleNamespace
from unittest.mock import MagicMock

import httpx
import pytest
from openai import APIConnectionError, APITimeoutError

from app.core.errors import ConfigurationError, GenerationError, NetworkError
from app.services import generation
from app.services.generation import STYLE_VOICES, CommentaryStyle, GenerationService

REQUEST = httpx.Request("POST", "https://api.openai.com/v1/chat/completions")


def _response(content):
    return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])


@pytest.fixture
def client():
    mock = MagicMock()
    mock.chat.completions.create.return_value = _response("translated text")
    return mock


def test_translate_uses_translation_model(client):
    service = GenerationService(client=client, translation_model="small-model", target_language="French")

    assert service.translate("hello") == "translated text"

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "small-model"
    assert "French" in kwargs["messages"][0]["content"]
    assert kwargs["messages"][1]["content"].endswith("hello")


def test_commentary_uses_style_voice(client):
    service = GenerationService(client=client, commentary_model="big-model")

    service.generate_commentary("translated article", CommentaryStyle.CONTRARIAN)

    kwargs = client.chat.completions.create.call_args.kwargs
    assert kwargs["model"] == "big-model"
    assert STYLE_VOICES[CommentaryStyle.CONTRARIAN] in kwargs["messages"][0]["content"]
    assert "translated article" in kwargs["messages"][1]["content"]


def test_every_style_has_a_voice():
    assert set(STYLE_VOICES) == set(CommentaryStyle)


def test_empty_output_is_generation_error(client):
    client.chat.completions.create.return_value = _response("")

    with pytest.raises(GenerationError):
        GenerationService(client=client).translate("hello")


def test_timeout_is_network_error(client):
    client.chat.completions.create.side_effect = APITimeoutError(request=REQUEST)

    with pytest.raises(NetworkError):
        GenerationService(client=client).translate("hello")


def test_connection_error_is_network_error(client):
    client.chat.completions.create.side_effect = APIConnectionError(request=REQUEST)

    with pytest.raises(NetworkError):
        GenerationService(client=client).generate_commentary("text")


def test_missing_api_key(monkeypatch):
    monkeypatch.setattr(generation, "OPENAI_API_KEY", "")

    with pytest.raises(ConfigurationError):
        GenerationService().translate("hello")
