from functools import lru_cache

from podcastgen.core.audio import AudioAssembler, FfmpegTools
from podcastgen.core.config import settings
from podcastgen.core.dialogue import DialogueSynthesizer
from podcastgen.core.llm import LLMManager
from podcastgen.core.personalities import PersonalityCatalog
from podcastgen.core.prompt_engine import PromptEngine
from podcastgen.core.scraper import Scraper
from podcastgen.core.tts import TTSService
from podcastgen.db.session import SessionLocal
from podcastgen.services.podcast_generation_service import GenerationDependencies, PodcastGenerationService
from podcastgen.services.podcast_repository import PodcastRepository
from podcastgen.services.podcast_service import PodcastService


def build_podcast_service() -> PodcastService:
    """
    Wire every collaborator of the podcast pipeline from `settings`.
    """
    tts = TTSService.from_settings(settings)
    repository = PodcastRepository(SessionLocal)
    deps = GenerationDependencies(
        repository=repository,
        scraper=Scraper.from_settings(settings),
        prompt_engine=PromptEngine(LLMManager.from_settings(settings)),
        tts=tts,
        synthesizer=DialogueSynthesizer(tts, concurrency=settings.TTS_CONCURRENCY, audio_format=settings.AUDIO_FORMAT),
        assembler=AudioAssembler(
            FfmpegTools(settings.FFMPEG_BINARY, settings.FFPROBE_BINARY),
            scratch_dir=settings.SCRATCH_DIR,
            audio_format=settings.AUDIO_FORMAT,
        ),
    )
    return PodcastService(
        repository=repository,
        generation_service=PodcastGenerationService(deps),
        tts=tts,
        catalog=PersonalityCatalog(settings.PERSONALITY_PREVIEW_DIR, audio_format=settings.AUDIO_FORMAT),
    )


# --- Podcast Service Dependency ---
@lru_cache()
def get_podcast_service() -> PodcastService:
    """
    FastAPI dependency returning the process-wide PodcastService.
    Background tasks it spawns are tracked by the instance, so it must be shared.
    """
    return build_podcast_service()
