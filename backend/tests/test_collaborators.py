import asyncio
from types import SimpleNamespace
from unittest import mock

import pytest
import requests

from podcastgen.core.errors import ScraperError
from podcastgen.core.llm import ChatOptions, LLMConfig, LLMManager, LLMProvider
from podcastgen.core.scraper import Scraper
from podcastgen.core.tts import TTSError, TTSService
from podcastgen.schemas.podcast import SourceRef


# --- Scraper ---

def test_scraper_returns_text_sources_verbatim():
    with mock.patch("podcastgen.core.scraper.requests.get") as get:
        assert asyncio.run(Scraper().fetch(SourceRef(kind="text", detail="raw words"))) == "raw words"
    get.assert_not_called()


def test_scraper_fetches_url_with_browser_headers():
    response = SimpleNamespace(status_code=200, text="<html>ok</html>")
    with mock.patch("podcastgen.core.scraper.requests.get", return_value=response) as get:
        html = asyncio.run(Scraper(timeout=7, user_agent="UA/1").fetch(SourceRef(detail="https://example.com")))

    assert html == "<html>ok</html>"
    _, kwargs = get.call_args
    assert kwargs["timeout"] == 7
    assert kwargs["headers"]["User-Agent"] == "UA/1"
    assert "Accept-Language" in kwargs["headers"]


def test_scraper_non_2xx_raises_with_status():
    response = SimpleNamespace(status_code=404, text="nope")
    with mock.patch("podcastgen.core.scraper.requests.get", return_value=response):
        with pytest.raises(ScraperError) as info:
            asyncio.run(Scraper().fetch(SourceRef(detail="https://example.com/missing")))

    assert info.value.status_code == 404
    assert info.value.url == "https://example.com/missing"


def test_scraper_network_error_is_wrapped():
    with mock.patch("podcastgen.core.scraper.requests.get", side_effect=requests.exceptions.ConnectionError("down")):
        with pytest.raises(ScraperError):
            asyncio.run(Scraper().fetch(SourceRef(detail="https://example.com")))


def test_scraper_rejects_unknown_kind():
    with pytest.raises(ScraperError):
        asyncio.run(Scraper().fetch(SourceRef(kind="ftp", detail="ftp://example.com")))


# --- TTS ---

def test_tts_rejects_unknown_provider():
    with pytest.raises(ValueError):
        TTSService(provider="polly")


def test_tts_openai_posts_speech_request():
    response = mock.Mock(content=b"mp3-bytes")
    with mock.patch("podcastgen.core.tts.requests.post", return_value=response) as post:
        tts = TTSService(provider="openai", openai_api_key="sk-test")
        audio = asyncio.run(tts.synthesize("Hello", voice="nova", speed=1.2))

    assert audio == b"mp3-bytes"
    args, kwargs = post.call_args
    assert args[0] == "https://api.openai.com/v1/audio/speech"
    assert kwargs["json"] == {"model": "tts-1", "input": "Hello", "voice": "nova", "response_format": "mp3", "speed": 1.2}
    assert kwargs["headers"]["Authorization"] == "Bearer sk-test"


def test_tts_azure_uses_deployment_url():
    response = mock.Mock(content=b"az")
    with mock.patch("podcastgen.core.tts.requests.post", return_value=response) as post:
        tts = TTSService(provider="azure", azure_key="k", azure_endpoint="https://az.example.com/")
        assert asyncio.run(tts.synthesize("Hi", voice="alloy")) == b"az"

    url = post.call_args[0][0]
    assert url == "https://az.example.com/openai/deployments/tts/audio/speech?api-version=2025-03-01-preview"
    assert post.call_args[1]["headers"]["api-key"] == "k"


def test_tts_http_error_becomes_tts_error():
    response = mock.Mock()
    response.raise_for_status.side_effect = requests.exceptions.HTTPError("429")
    with mock.patch("podcastgen.core.tts.requests.post", return_value=response):
        with pytest.raises(TTSError):
            asyncio.run(TTSService(provider="openai", openai_api_key="sk").synthesize("Hi", voice="nova"))


def test_tts_missing_credentials_and_empty_text():
    with pytest.raises(TTSError):
        asyncio.run(TTSService(provider="openai").synthesize("Hi", voice="nova"))
    with pytest.raises(ValueError):
        asyncio.run(TTSService(provider="openai", openai_api_key="sk").synthesize("  ", voice="nova"))
    assert TTSService(provider="LOCAL").active_provider() == "local"


# --- LLM manager ---

class StubChatModel:
    def __init__(self, reply=None, error=None):
        self.reply = reply
        self.error = error
        self.messages = None

    async def ainvoke(self, messages):
        self.messages = messages
        if self.error:
            raise self.error
        return self.reply


def _manager(model):
    return LLMManager(LLMConfig(provider=LLMProvider.OPENAI, model="gpt-4o", api_key="sk"), llm=model)


def test_chat_completion_prepends_system_prompt_and_reports_usage():
    reply = SimpleNamespace(content="hello", usage_metadata={"input_tokens": 3, "output_tokens": 1, "total_tokens": 4})
    model = StubChatModel(reply=reply)

    response = asyncio.run(_manager(model).chat_completion("Hi", ChatOptions(system_prompt="Be brief.")))

    assert response.content == "hello"
    assert response.error is None
    assert response.usage["total_tokens"] == 4
    assert [type(m).__name__ for m in model.messages] == ["SystemMessage", "HumanMessage"]


def test_chat_completion_reports_provider_errors_instead_of_raising():
    response = asyncio.run(_manager(StubChatModel(error=RuntimeError("quota"))).chat_completion("Hi"))

    assert response.content is None
    assert "quota" in response.error


def test_chat_options_merge():
    merged = ChatOptions(temperature=0.7, max_tokens=100).merged_with(ChatOptions(max_tokens=5))
    assert merged == ChatOptions(temperature=0.7, max_tokens=5)
