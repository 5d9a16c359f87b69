import asyncio
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Awaitable, Callable, List, Optional, Protocol, Sequence, Set

from pydantic import ValidationError as PydanticValidationError

from podcastgen.core.audio import AudioAssembler
from podcastgen.core.dialogue import DialogueSynthesizer
from podcastgen.core.errors import AssemblyError, ScriptGenerationError
from podcastgen.core.personalities import ResolvedVoice, resolve_voice
from podcastgen.core.prompt_engine import PromptDefinition, PromptEngine
from podcastgen.core.prompts import GENERATE_PODCAST_SCRIPT_PROMPT
from podcastgen.schemas.podcast import DialogueSegment, PodcastScript, PodcastScriptParams, PodcastStatus, SourceRef
from podcastgen.services.podcast_repository import PodcastRepository

logger = logging.getLogger(__name__)


class ContentFetcher(Protocol):
    async def fetch(self, source: SourceRef) -> str: ...


class ProviderAware(Protocol):
    def active_provider(self) -> str: ...


@dataclass
class GenerationDependencies:
    """Everything the generation pipeline talks to, wired in one place."""
    repository: PodcastRepository
    scraper: ContentFetcher
    prompt_engine: PromptEngine
    tts: ProviderAware
    synthesizer: DialogueSynthesizer
    assembler: AudioAssembler
    script_prompt: PromptDefinition = GENERATE_PODCAST_SCRIPT_PROMPT


class PodcastGenerationService:
    """
    Runs the podcast pipeline and owns the status state machine.

    `generate` and `regenerate` catch every failure once, at the top, and
    record it as status 'failed'. `start_generation`/`start_regeneration`
    spawn the same coroutines as background tasks; any exception that still
    escapes is routed through the same failure path.
    """

    def __init__(self, deps: GenerationDependencies):
        self.repository = deps.repository
        self.scraper = deps.scraper
        self.prompt_engine = deps.prompt_engine
        self.tts = deps.tts
        self.synthesizer = deps.synthesizer
        self.assembler = deps.assembler
        self.script_prompt = deps.script_prompt
        self._tasks: Set[asyncio.Task] = set()
        logger.info("PodcastGenerationService: Initialized.")

    # --- Background task handling ---

    @property
    def pending_tasks(self) -> Set[asyncio.Task]:
        return set(self._tasks)

    def _spawn(self, podcast_id: str, factory: Callable[[], Awaitable[None]]) -> asyncio.Task:
        task = asyncio.create_task(self._run_guarded(podcast_id, factory), name=f"podcast-{podcast_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run_guarded(self, podcast_id: str, factory: Callable[[], Awaitable[None]]) -> None:
        try:
            await factory()
        except Exception as e:
            logger.error(f"PodcastGenerationService: Background task for podcast {podcast_id} failed: {e}", exc_info=True)
            await self._mark_failed(podcast_id, e)

    def start_generation(self, podcast_id: str, source: SourceRef, host_personality_id: str, cohost_personality_id: str) -> asyncio.Task:
        """Spawn `generate` as a detached task and return its handle."""
        logger.info(f"PodcastGenerationService: Scheduling generation for podcast {podcast_id}.")
        return self._spawn(podcast_id, lambda: self.generate(podcast_id, source, host_personality_id, cohost_personality_id))

    def start_regeneration(
        self,
        podcast_id: str,
        dialogue: Sequence[DialogueSegment],
        host_personality_id: str,
        cohost_personality_id: str,
        title: Optional[str] = None,
    ) -> asyncio.Task:
        """Spawn `regenerate` as a detached task and return its handle."""
        logger.info(f"PodcastGenerationService: Scheduling audio regeneration for podcast {podcast_id}.")
        return self._spawn(
            podcast_id,
            lambda: self.regenerate(podcast_id, dialogue, host_personality_id, cohost_personality_id, title),
        )

    # --- Pipelines ---

    async def generate(self, podcast_id: str, source: SourceRef, host_personality_id: str, cohost_personality_id: str) -> None:
        """
        Full pipeline: fetch content, generate the script, persist transcript and
        tags, synthesize, assemble and finalize.
        """
        logger.info(f"PodcastGenerationService: Starting podcast generation for {podcast_id} (host={host_personality_id}, cohost={cohost_personality_id}).")
        try:
            host, cohost = self._resolve_voices(host_personality_id, cohost_personality_id)

            logger.info(f"PodcastGenerationService: Fetching content for podcast {podcast_id} from {source.kind} source.")
            content = await self.scraper.fetch(source)

            script = await self._generate_script(podcast_id, content, host, cohost)

            await self.repository.update_transcript(podcast_id, script.dialogue)
            await self.repository.add_tags(podcast_id, script.tags, replace=True)
            logger.info(f"PodcastGenerationService: Transcript ({len(script.dialogue)} segments) and {len(script.tags)} tags stored for podcast {podcast_id}.")

            await self._produce_audio(podcast_id, script.dialogue, host, cohost, title=script.title, summary=script.summary)
            logger.info(f"PodcastGenerationService: Podcast generation finished successfully for {podcast_id}.")
        except Exception as e:
            logger.error(f"PodcastGenerationService: Podcast generation failed for {podcast_id}: {e}", exc_info=True)
            await self._mark_failed(podcast_id, e)

    async def regenerate(
        self,
        podcast_id: str,
        dialogue: Sequence[DialogueSegment],
        host_personality_id: str,
        cohost_personality_id: str,
        title: Optional[str] = None,
    ) -> None:
        """Re-synthesize audio for an edited dialogue and/or voices; no fetch, no script prompt."""
        logger.info(f"PodcastGenerationService: Starting audio regeneration for {podcast_id}.")
        try:
            host, cohost = self._resolve_voices(host_personality_id, cohost_personality_id)
            await self._produce_audio(podcast_id, list(dialogue), host, cohost, title=title)
            logger.info(f"PodcastGenerationService: Audio regeneration finished successfully for {podcast_id}.")
        except Exception as e:
            logger.error(f"PodcastGenerationService: Audio regeneration failed for {podcast_id}: {e}", exc_info=True)
            await self._mark_failed(podcast_id, e)

    # --- Stages ---

    def _resolve_voices(self, host_personality_id: str, cohost_personality_id: str):
        provider = self.tts.active_provider()
        host = resolve_voice(provider, host_personality_id)
        cohost = resolve_voice(provider, cohost_personality_id)
        logger.debug(f"PodcastGenerationService: Resolved voices host={host.name}:{host.voice}, cohost={cohost.name}:{cohost.voice} for provider '{provider}'.")
        return host, cohost

    async def _generate_script(self, podcast_id: str, content: str, host: ResolvedVoice, cohost: ResolvedVoice) -> PodcastScript:
        logger.info(f"PodcastGenerationService: Running script prompt for podcast {podcast_id}.")
        params = PodcastScriptParams.model_construct(
            html_content=content,
            host_name=host.name,
            host_personality_description=host.description,
            cohost_name=cohost.name,
            cohost_personality_description=cohost.description,
        )
        result = await self.prompt_engine.run(self.script_prompt, params)
        if not result.ok or result.structured_output is None:
            raise ScriptGenerationError(result.error)
        return result.structured_output

    async def _produce_audio(
        self,
        podcast_id: str,
        dialogue: List[DialogueSegment],
        host: ResolvedVoice,
        cohost: ResolvedVoice,
        title: Optional[str] = None,
        summary: Optional[str] = None,
    ) -> None:
        voice_map = {host.name: host.voice, cohost.name: cohost.voice}
        buffers = await self.synthesizer.synthesize(dialogue, voice_map, default_voice=host.voice)
        valid: List[bytes] = [b for b in buffers if b is not None]
        if not valid:
            raise AssemblyError(f"No audio could be synthesized for any of the {len(dialogue)} dialogue segments.")

        audio = await self.assembler.stitch(valid, podcast_id)
        duration = await self.assembler.duration(audio)
        audio_url = self.assembler.encode(audio)

        fields = {
            "audioUrl": audio_url,
            "durationSeconds": duration,
            "generatedAt": datetime.now(timezone.utc),
        }
        if title:
            fields["title"] = title
        if summary is not None:
            fields["summary"] = summary
        await self.repository.update(podcast_id, **fields)
        await self.repository.update_status(podcast_id, PodcastStatus.SUCCESS)

    # --- Failure path ---

    @staticmethod
    def _format_error(error: BaseException) -> str:
        if isinstance(error, PydanticValidationError):
            return f"Generation failed due to invalid data: {error.error_count()} validation error(s): {error}"
        message = str(error) or type(error).__name__
        return f"Generation failed: {message}"

    async def _mark_failed(self, podcast_id: str, error: BaseException) -> None:
        message = self._format_error(error)
        try:
            await self.repository.update_status(podcast_id, PodcastStatus.FAILED, message)
            logger.warning(f"PodcastGenerationService: Podcast {podcast_id} marked as failed: {message}")
        except Exception as update_error:
            logger.critical(
                f"PodcastGenerationService: CRITICAL FAILURE: Could not update podcast {podcast_id} status to FAILED "
                f"(original error: {error}; update error: {update_error})",
                exc_info=True,
            )
