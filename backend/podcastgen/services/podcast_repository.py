import asyncio
import logging
import uuid
from datetime import datetime, timezone
from typing import Any, Callable, Iterable, List, Optional, Sequence, TypeVar, Union

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session, sessionmaker

from podcastgen.core.errors import PersistenceError
from podcastgen.models.podcast import Podcast
from podcastgen.models.tag import Tag
from podcastgen.models.transcript import Transcript
from podcastgen.schemas.podcast import (
    DialogueSegment,
    PodcastDetail,
    PodcastInDB,
    PodcastStatus,
    SourceRef,
)

logger = logging.getLogger(__name__)

T = TypeVar("T")

# Columns that `update` may write. Status goes through `update_status` only.
UPDATABLE_FIELDS = {
    "title",
    "summary",
    "audioUrl",
    "durationSeconds",
    "generatedAt",
    "hostPersonalityId",
    "cohostPersonalityId",
}


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _to_detail(podcast: Podcast) -> PodcastDetail:
    content = podcast.transcript.content if podcast.transcript is not None else []
    return PodcastDetail(
        **PodcastInDB.model_validate(podcast).model_dump(),
        transcript=[DialogueSegment.model_validate(segment) for segment in content or []],
        tags=sorted(t.tag for t in podcast.tags),
    )


class PodcastRepository:
    """
    Durable store for podcasts, their transcripts and tags.

    Each call opens its own short-lived session and runs in a worker thread so
    the event loop never blocks on the database. SQLAlchemy failures surface
    as `PersistenceError`.
    """

    def __init__(self, session_factory: sessionmaker):
        self.session_factory = session_factory

    async def _run(self, operation: str, fn: Callable[[Session], T]) -> T:
        def work() -> T:
            with self.session_factory() as db:
                try:
                    return fn(db)
                except SQLAlchemyError as e:
                    db.rollback()
                    logger.error(f"PodcastRepository: {operation} failed: {e}", exc_info=True)
                    raise PersistenceError(f"{operation} failed: {e}") from e
        return await asyncio.to_thread(work)

    async def create_initial(
        self,
        owner_id: str,
        source: Union[SourceRef, str],
        host_personality_id: str,
        cohost_personality_id: str,
    ) -> PodcastInDB:
        """
        Create the podcast (status 'processing') and its empty transcript in one transaction.
        """
        if isinstance(source, str):
            source = SourceRef(kind="url", detail=source)

        def work(db: Session) -> PodcastInDB:
            now = _utcnow()
            podcast = Podcast(
                id=str(uuid.uuid4()),
                ownerId=owner_id,
                title=f"Podcast from {source.detail}"[:256],
                summary="",
                status=PodcastStatus.PROCESSING.value,
                sourceType=source.kind,
                sourceDetail=source.detail,
                hostPersonalityId=host_personality_id,
                cohostPersonalityId=cohost_personality_id,
                createdAt=now,
                updatedAt=now,
            )
            podcast.transcript = Transcript(id=str(uuid.uuid4()), content=[])
            db.add(podcast)
            db.commit()
            db.refresh(podcast)
            logger.info(f"PodcastRepository: Created podcast {podcast.id} for owner {owner_id}.")
            return PodcastInDB.model_validate(podcast)

        return await self._run("create_initial", work)

    async def update_status(self, podcast_id: str, status: Union[PodcastStatus, str], error_message: Optional[str] = None) -> None:
        """
        Set the status. 'failed' stores `error_message` (or 'Unknown error');
        any other status clears the stored error.
        """
        status = PodcastStatus(status)

        def work(db: Session) -> None:
            podcast = db.get(Podcast, podcast_id)
            if podcast is None:
                logger.warning(f"PodcastRepository: update_status skipped, podcast {podcast_id} not found.")
                return
            podcast.status = status.value
            podcast.errorMessage = (error_message or "Unknown error") if status == PodcastStatus.FAILED else None
            podcast.updatedAt = _utcnow()
            db.commit()
            logger.info(f"PodcastRepository: Podcast {podcast_id} status set to '{status.value}'.")

        await self._run("update_status", work)

    async def update_transcript(self, podcast_id: str, segments: Sequence[Union[DialogueSegment, dict]]) -> None:
        """Overwrite the transcript content wholesale."""
        content = [
            s.model_dump() if isinstance(s, DialogueSegment) else DialogueSegment.model_validate(s).model_dump()
            for s in segments or []
        ]

        def work(db: Session) -> None:
            transcript = db.query(Transcript).filter(Transcript.podcastId == podcast_id).first()
            if transcript is None:
                if db.get(Podcast, podcast_id) is None:
                    logger.warning(f"PodcastRepository: update_transcript skipped, podcast {podcast_id} not found.")
                    return
                transcript = Transcript(id=str(uuid.uuid4()), podcastId=podcast_id)
                db.add(transcript)
            transcript.content = content
            transcript.updatedAt = _utcnow()
            db.commit()
            logger.info(f"PodcastRepository: Transcript for podcast {podcast_id} updated ({len(content)} segments).")

        await self._run("update_transcript", work)

    async def add_tags(self, podcast_id: str, tags: Iterable[str], replace: bool = False) -> None:
        """
        Attach tags to a podcast. Blank and duplicate tags are dropped; with
        `replace=True` the existing tag set is removed first.
        """
        unique: List[str] = []
        for tag in tags or []:
            tag = (tag or "").strip()
            if tag and tag not in unique:
                unique.append(tag)

        def work(db: Session) -> None:
            if db.get(Podcast, podcast_id) is None:
                logger.warning(f"PodcastRepository: add_tags skipped, podcast {podcast_id} not found.")
                return
            if replace:
                db.query(Tag).filter(Tag.podcastId == podcast_id).delete(synchronize_session=False)
                existing = set()
            else:
                existing = {t for (t,) in db.query(Tag.tag).filter(Tag.podcastId == podcast_id).all()}
            db.add_all(Tag(podcastId=podcast_id, tag=tag) for tag in unique if tag not in existing)
            db.commit()
            logger.info(f"PodcastRepository: Stored {len(unique)} tags for podcast {podcast_id} (replace={replace}).")

        await self._run("add_tags", work)

    async def update(self, podcast_id: str, **fields: Any) -> Optional[PodcastInDB]:
        """
        Write a subset of podcast columns. Returns the updated record, or None if
        the podcast does not exist.

        Raises:
            ValueError: if a field is not updatable.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")

        def work(db: Session) -> Optional[PodcastInDB]:
            podcast = db.get(Podcast, podcast_id)
            if podcast is None:
                logger.warning(f"PodcastRepository: update skipped, podcast {podcast_id} not found.")
                return None
            for key, value in fields.items():
                setattr(podcast, key, value)
            podcast.updatedAt = _utcnow()
            db.commit()
            db.refresh(podcast)
            return PodcastInDB.model_validate(podcast)

        return await self._run("update", work)

    async def reset_for_regeneration(
        self,
        podcast_id: str,
        host_personality_id: str,
        cohost_personality_id: str,
        transcript: Optional[Sequence[Union[DialogueSegment, dict]]] = None,
        **fields: Any,
    ) -> Optional[PodcastInDB]:
        """
        Put a podcast back into 'processing' ahead of audio regeneration: clear
        the audio and duration, store the voices and optional new transcript and
        apply `fields`, all in one transaction. Returns None if the podcast
        does not exist.

        Raises:
            ValueError: if a field is not updatable.
        """
        unknown = set(fields) - UPDATABLE_FIELDS
        if unknown:
            raise ValueError(f"Fields cannot be updated: {sorted(unknown)}")
        content = None
        if transcript is not None:
            content = [
                s.model_dump() if isinstance(s, DialogueSegment) else DialogueSegment.model_validate(s).model_dump()
                for s in transcript
            ]

        def work(db: Session) -> Optional[PodcastInDB]:
            podcast = db.get(Podcast, podcast_id)
            if podcast is None:
                logger.warning(f"PodcastRepository: reset_for_regeneration skipped, podcast {podcast_id} not found.")
                return None
            now = _utcnow()
            for key, value in fields.items():
                setattr(podcast, key, value)
            podcast.status = PodcastStatus.PROCESSING.value
            podcast.errorMessage = None
            podcast.audioUrl = None
            podcast.durationSeconds = None
            podcast.hostPersonalityId = host_personality_id
            podcast.cohostPersonalityId = cohost_personality_id
            podcast.updatedAt = now
            if content is not None:
                if podcast.transcript is None:
                    podcast.transcript = Transcript(id=str(uuid.uuid4()), content=content)
                else:
                    podcast.transcript.content = content
                    podcast.transcript.updatedAt = now
            db.commit()
            db.refresh(podcast)
            logger.info(f"PodcastRepository: Podcast {podcast_id} reset to 'processing' for regeneration.")
            return PodcastInDB.model_validate(podcast)

        return await self._run("reset_for_regeneration", work)

    async def find_by_id(self, podcast_id: str, owner_id: Optional[str] = None) -> Optional[PodcastDetail]:
        """Fetch a podcast with transcript and tags; scoped to `owner_id` when given."""
        def work(db: Session) -> Optional[PodcastDetail]:
            query = db.query(Podcast).filter(Podcast.id == podcast_id)
            if owner_id is not None:
                query = query.filter(Podcast.ownerId == owner_id)
            podcast = query.first()
            return _to_detail(podcast) if podcast is not None else None

        return await self._run("find_by_id", work)

    async def find_by_owner(self, owner_id: str) -> List[PodcastInDB]:
        """All podcasts of an owner, newest first."""
        def work(db: Session) -> List[PodcastInDB]:
            podcasts = (
                db.query(Podcast)
                .filter(Podcast.ownerId == owner_id)
                .order_by(Podcast.createdAt.desc())
                .all()
            )
            return [PodcastInDB.model_validate(p) for p in podcasts]

        return await self._run("find_by_owner", work)

    async def delete(self, owner_id: str, podcast_id: str) -> bool:
        """Delete an owner's podcast with its transcript and tags. Returns False if not found."""
        def work(db: Session) -> bool:
            podcast = (
                db.query(Podcast)
                .filter(Podcast.id == podcast_id, Podcast.ownerId == owner_id)
                .first()
            )
            if podcast is None:
                return False
            db.delete(podcast)
            db.commit()
            logger.info(f"PodcastRepository: Deleted podcast {podcast_id} for owner {owner_id}.")
            return True

        return await self._run("delete", work)
