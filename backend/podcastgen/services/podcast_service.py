import asyncio
import logging
from typing import List, Optional, Sequence

from podcastgen.core.errors import NotFoundError, PersonalityNotFoundError, ValidationError
from podcastgen.core.personalities import PersonalityCatalog, PersonalityId, resolve_voice
from podcastgen.schemas.podcast import (
    DialogueSegment,
    PersonalityInfo,
    PodcastDetail,
    PodcastInDB,
    PodcastStatus,
    SourceRef,
)
from podcastgen.services.podcast_generation_service import PodcastGenerationService, ProviderAware
from podcastgen.services.podcast_repository import PodcastRepository

# Configure logger for this module
logger = logging.getLogger(__name__)


class PodcastService:
    """
    Facade over podcast creation, editing and retrieval.

    Creation and audio-affecting edits return as soon as the record is
    written; the pipeline itself runs as a background task owned by the
    generation service.
    """

    def __init__(
        self,
        repository: PodcastRepository,
        generation_service: PodcastGenerationService,
        tts: ProviderAware,
        catalog: Optional[PersonalityCatalog] = None,
    ):
        self.repository = repository
        self.generation_service = generation_service
        self.tts = tts
        self.catalog = catalog or PersonalityCatalog()
        logger.info("PodcastService: Initialized.")

    def _check_personalities(self, host_id: str, cohost_id: str) -> None:
        if host_id == cohost_id:
            raise ValidationError("Host and cohost personalities must be different.")
        provider = self.tts.active_provider()
        for personality_id in (host_id, cohost_id):
            try:
                resolve_voice(provider, personality_id)
            except PersonalityNotFoundError as e:
                raise ValidationError(str(e)) from e

    async def create_podcast(
        self,
        owner_id: str,
        source_url: str,
        host_personality_id: str = PersonalityId.ARTHUR.value,
        cohost_personality_id: str = PersonalityId.CHLOE.value,
    ) -> PodcastInDB:
        """
        Create a podcast in 'processing' state and start generating it in the background.

        Args:
            owner_id (str): The owner of the new podcast.
            source_url (str): The page to turn into a podcast.
            host_personality_id (str): Personality voicing the host.
            cohost_personality_id (str): Personality voicing the co-host.

        Returns:
            PodcastInDB: The initial record.

        Raises:
            ValidationError: If the personalities are equal, unknown or unmapped for the active provider.
        """
        if not source_url or not source_url.strip():
            raise ValidationError("A source URL is required.")
        self._check_personalities(host_personality_id, cohost_personality_id)

        source = SourceRef(kind="url", detail=source_url.strip())
        logger.info(f"PodcastService: Creating podcast for owner {owner_id} from {source.detail}.")
        podcast = await self.repository.create_initial(owner_id, source, host_personality_id, cohost_personality_id)

        logger.info(f"PodcastService: Initial record {podcast.id} created. Triggering background generation.")
        self.generation_service.start_generation(podcast.id, source, host_personality_id, cohost_personality_id)
        return podcast

    async def update_podcast(
        self,
        owner_id: str,
        podcast_id: str,
        title: Optional[str] = None,
        summary: Optional[str] = None,
        dialogue: Optional[Sequence[DialogueSegment]] = None,
        host_personality_id: Optional[str] = None,
        cohost_personality_id: Optional[str] = None,
    ) -> PodcastInDB:
        """
        Edit a podcast. Changing the dialogue or a voice resets it to 'processing'
        and regenerates the audio in the background; other edits are written directly.

        Raises:
            NotFoundError: If the podcast does not exist for this owner.
            ValidationError: If the dialogue or personalities are invalid.
        """
        current = await self.repository.find_by_id(podcast_id, owner_id=owner_id)
        if current is None:
            raise NotFoundError(f"Podcast {podcast_id} not found.")

        if dialogue is not None:
            dialogue = [s if isinstance(s, DialogueSegment) else DialogueSegment.model_validate(s) for s in dialogue]
            if not dialogue:
                raise ValidationError("Podcast content must contain at least one segment.")
            if any(not s.line.strip() for s in dialogue):
                raise ValidationError("Dialogue line cannot be empty.")

        host_id = host_personality_id or current.hostPersonalityId
        cohost_id = cohost_personality_id or current.cohostPersonalityId
        self._check_personalities(host_id, cohost_id)

        dialogue_changed = dialogue is not None and [s.model_dump() for s in dialogue] != [s.model_dump() for s in current.transcript]
        voices_changed = host_id != current.hostPersonalityId or cohost_id != current.cohostPersonalityId

        fields = {}
        if title is not None:
            fields["title"] = title
        if summary is not None:
            fields["summary"] = summary

        if not (dialogue_changed or voices_changed):
            logger.info(f"PodcastService: Metadata-only update for podcast {podcast_id}.")
            updated = await self.repository.update(podcast_id, **fields) if fields else current
            if current.audioUrl and current.status != PodcastStatus.SUCCESS:
                await self.repository.update_status(podcast_id, PodcastStatus.SUCCESS)
            return await self._reload(podcast_id, owner_id, updated)

        logger.info(f"PodcastService: Podcast {podcast_id} needs audio regeneration (dialogue_changed={dialogue_changed}, voices_changed={voices_changed}).")
        script = dialogue if dialogue is not None else list(current.transcript)
        if not script:
            raise ValidationError("Podcast has no transcript to regenerate audio from.")

        reset = await self.repository.reset_for_regeneration(
            podcast_id,
            host_id,
            cohost_id,
            transcript=script if dialogue_changed else None,
            **fields,
        )
        if reset is None:
            raise NotFoundError(f"Podcast {podcast_id} not found.")
        updated = await self._reload(podcast_id, owner_id, reset)

        self.generation_service.start_regeneration(podcast_id, script, host_id, cohost_id, title=title)
        return updated

    async def _reload(self, podcast_id: str, owner_id: str, fallback: PodcastInDB) -> PodcastInDB:
        reloaded = await self.repository.find_by_id(podcast_id, owner_id=owner_id)
        return PodcastInDB.model_validate(reloaded.model_dump()) if reloaded is not None else fallback

    async def get_podcast(self, owner_id: str, podcast_id: str) -> PodcastDetail:
        """
        Raises:
            NotFoundError: If the podcast does not exist for this owner.
        """
        podcast = await self.repository.find_by_id(podcast_id, owner_id=owner_id)
        if podcast is None:
            raise NotFoundError(f"Podcast {podcast_id} not found.")
        return podcast

    async def list_podcasts(self, owner_id: str) -> List[PodcastInDB]:
        return await self.repository.find_by_owner(owner_id)

    async def delete_podcast(self, owner_id: str, podcast_id: str) -> None:
        """
        Raises:
            NotFoundError: If the podcast does not exist for this owner.
        """
        if not await self.repository.delete(owner_id, podcast_id):
            raise NotFoundError(f"Podcast {podcast_id} not found.")

    async def get_available_personalities(self) -> List[PersonalityInfo]:
        """Catalog entries enriched for the active TTS provider. An empty list if enrichment fails."""
        provider = self.tts.active_provider()
        try:
            return await asyncio.to_thread(self.catalog.list_for_provider, provider)
        except Exception as e:
            logger.error(f"PodcastService: Failed to enrich personalities for provider '{provider}': {e}", exc_info=True)
            return []
