import asyncio
import json
from pathlib import Path
from typing import List, Optional, Sequence

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

import podcastgen.models  # noqa: F401
from podcastgen.core.audio import AudioAssembler
from podcastgen.core.dialogue import DialogueSynthesizer
from podcastgen.core.llm import ChatResponse
from podcastgen.core.personalities import PersonalityCatalog
from podcastgen.core.prompt_engine import PromptEngine
from podcastgen.db.session import Base
from podcastgen.schemas.podcast import SourceRef
from podcastgen.services.podcast_generation_service import GenerationDependencies, PodcastGenerationService
from podcastgen.services.podcast_repository import PodcastRepository
from podcastgen.services.podcast_service import PodcastService


VALID_SCRIPT = {
    "title": "Tides of Change",
    "summary": "Arthur and Chloe discuss how tides work.",
    "tags": ["oceans", "physics", "moon"],
    "dialogue": [
        {"speaker": "Arthur", "line": "Welcome to the show."},
        {"speaker": "Chloe", "line": "Today we talk about tides."},
    ],
}


class FakeLLM:
    """Returns queued replies in order; the last reply repeats."""

    def __init__(self, replies: Optional[List[ChatResponse]] = None):
        self.replies = replies or [ChatResponse(content=json.dumps(VALID_SCRIPT))]
        self.calls = []

    async def chat_completion(self, prompt_or_messages, options=None):
        self.calls.append((prompt_or_messages, options))
        if len(self.calls) <= len(self.replies):
            reply = self.replies[len(self.calls) - 1]
        else:
            reply = self.replies[-1]
        if isinstance(reply, Exception):
            raise reply
        return reply


class FakeTTS:
    def __init__(self, provider: str = "openai", fail_texts: Sequence[str] = (), delay: float = 0.0):
        self.provider = provider
        self.fail_texts = set(fail_texts)
        self.delay = delay
        self.calls = []
        self.in_flight = 0
        self.max_in_flight = 0

    def active_provider(self) -> str:
        return self.provider

    async def synthesize(self, text, voice, format="mp3", speed=None):
        self.calls.append((text, voice))
        self.in_flight += 1
        self.max_in_flight = max(self.max_in_flight, self.in_flight)
        try:
            await asyncio.sleep(self.delay)
            if text in self.fail_texts:
                raise RuntimeError(f"synthesis failed for {text!r}")
            return f"<{voice}:{text}>".encode()
        finally:
            self.in_flight -= 1


class FakeScraper:
    def __init__(self, content: str = "<html><body>Tides are caused by the moon.</body></html>", error: Exception = None):
        self.content = content
        self.error = error
        self.calls: List[SourceRef] = []

    async def fetch(self, source: SourceRef) -> str:
        self.calls.append(source)
        if self.error is not None:
            raise self.error
        return self.content


class FakeAudioTools:
    """Merges by byte concatenation; probes a fixed duration."""

    def __init__(self, duration: Optional[float] = 12.4, merge_error: Exception = None, probe_error: Exception = None):
        self.duration = duration
        self.merge_error = merge_error
        self.probe_error = probe_error
        self.merged_inputs: List[List[str]] = []
        self.probed: List[str] = []

    async def merge(self, files, output):
        self.merged_inputs.append(list(files))
        if self.merge_error is not None:
            raise self.merge_error
        Path(output).write_bytes(b"".join(Path(f).read_bytes() for f in files))

    async def probe(self, file):
        self.probed.append(file)
        if self.probe_error is not None:
            raise self.probe_error
        return self.duration


@pytest.fixture
def session_factory(tmp_path):
    engine = create_engine(f"sqlite:///{tmp_path / 'test.db'}", connect_args={"check_same_thread": False})
    Base.metadata.create_all(bind=engine)
    factory = sessionmaker(autocommit=False, autoflush=False, expire_on_commit=False, bind=engine)
    yield factory
    engine.dispose()


@pytest.fixture
def repository(session_factory):
    return PodcastRepository(session_factory)


@pytest.fixture
def scratch_dir(tmp_path):
    path = tmp_path / "scratch"
    path.mkdir()
    return path


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def fake_tts():
    return FakeTTS()


@pytest.fixture
def fake_scraper():
    return FakeScraper()


@pytest.fixture
def fake_tools():
    return FakeAudioTools()


@pytest.fixture
def generation_service(repository, fake_llm, fake_tts, fake_scraper, fake_tools, scratch_dir):
    deps = GenerationDependencies(
        repository=repository,
        scraper=fake_scraper,
        prompt_engine=PromptEngine(fake_llm),
        tts=fake_tts,
        synthesizer=DialogueSynthesizer(fake_tts, concurrency=5),
        assembler=AudioAssembler(fake_tools, scratch_dir=str(scratch_dir)),
    )
    return PodcastGenerationService(deps)


@pytest.fixture
def podcast_service(repository, generation_service, fake_tts):
    return PodcastService(repository, generation_service, fake_tts, catalog=PersonalityCatalog())


async def drain(service: PodcastGenerationService) -> None:
    """Wait for every background task spawned by `service`."""
    while service.pending_tasks:
        await asyncio.gather(*service.pending_tasks)
