import asyncio

import pytest
from sqlalchemy import event
from sqlalchemy.exc import OperationalError

from podcastgen.core.errors import PersistenceError
from podcastgen.schemas.podcast import DialogueSegment, PodcastStatus, SourceRef

SOURCE = SourceRef(kind="url", detail="https://example.com/a")


def run(coro):
    return asyncio.run(coro)


def test_create_initial_writes_podcast_and_empty_transcript(repository):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))

    assert podcast.status == PodcastStatus.PROCESSING
    assert podcast.title == "Podcast from https://example.com/a"
    assert podcast.sourceType == "url"
    assert podcast.sourceDetail == "https://example.com/a"

    detail = run(repository.find_by_id(podcast.id))
    assert detail.transcript == []
    assert detail.tags == []


def test_update_status_manages_error_message(repository):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))

    run(repository.update_status(podcast.id, PodcastStatus.FAILED))
    assert run(repository.find_by_id(podcast.id)).errorMessage == "Unknown error"

    run(repository.update_status(podcast.id, "failed", "boom"))
    assert run(repository.find_by_id(podcast.id)).errorMessage == "boom"

    run(repository.update_status(podcast.id, PodcastStatus.SUCCESS, "ignored"))
    detail = run(repository.find_by_id(podcast.id))
    assert detail.status == PodcastStatus.SUCCESS
    assert detail.errorMessage is None


def test_transcript_and_tags_are_overwritten_wholesale(repository):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))

    run(repository.update_transcript(podcast.id, [DialogueSegment(speaker="Arthur", line="one")]))
    run(repository.update_transcript(podcast.id, [{"speaker": "Chloe", "line": "two"}]))
    run(repository.add_tags(podcast.id, ["b", "a", "b", " "]))
    run(repository.add_tags(podcast.id, ["a", "c"]))

    detail = run(repository.find_by_id(podcast.id))
    assert detail.transcript == [DialogueSegment(speaker="Chloe", line="two")]
    assert detail.tags == ["a", "b", "c"]

    run(repository.add_tags(podcast.id, ["z"], replace=True))
    assert run(repository.find_by_id(podcast.id)).tags == ["z"]


def test_update_writes_fields_and_rejects_unknown(repository):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))

    updated = run(repository.update(podcast.id, title="New", audioUrl="data:audio/mp3;base64,AA==", durationSeconds=3))
    assert updated.title == "New"
    assert updated.durationSeconds == 3

    with pytest.raises(ValueError):
        run(repository.update(podcast.id, status="success"))
    assert run(repository.update("missing", title="x")) is None


def test_find_by_owner_is_newest_first_and_scoped(repository):
    first = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))
    second = run(repository.create_initial("owner-1", "https://example.com/b", "Maya", "Sam"))
    run(repository.create_initial("owner-2", SOURCE, "Arthur", "Chloe"))

    assert [p.id for p in run(repository.find_by_owner("owner-1"))] == [second.id, first.id]
    assert run(repository.find_by_id(first.id, owner_id="owner-2")) is None


def test_delete_cascades(repository, session_factory):
    from podcastgen.models.tag import Tag
    from podcastgen.models.transcript import Transcript

    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))
    run(repository.add_tags(podcast.id, ["x"]))

    assert run(repository.delete("owner-2", podcast.id)) is False
    assert run(repository.delete("owner-1", podcast.id)) is True
    assert run(repository.find_by_id(podcast.id)) is None
    with session_factory() as db:
        assert db.query(Transcript).count() == 0
        assert db.query(Tag).count() == 0


def test_sqlalchemy_errors_become_persistence_errors(repository, session_factory):
    from podcastgen.db.session import Base

    Base.metadata.drop_all(bind=session_factory.kw["bind"])

    with pytest.raises(PersistenceError):
        run(repository.find_by_owner("owner-1"))


def test_reset_for_regeneration_clears_audio_and_writes_transcript(repository):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))
    run(repository.update(podcast.id, audioUrl="data:audio/mp3;base64,AAAA", durationSeconds=9))
    run(repository.update_status(podcast.id, PodcastStatus.FAILED, "old failure"))

    reset = run(repository.reset_for_regeneration(
        podcast.id, "Arthur", "David", transcript=[{"speaker": "Arthur", "line": "New."}], title="Renamed"
    ))

    assert reset.status == PodcastStatus.PROCESSING
    detail = run(repository.find_by_id(podcast.id))
    assert detail.status == PodcastStatus.PROCESSING
    assert detail.errorMessage is None
    assert detail.audioUrl is None
    assert detail.durationSeconds is None
    assert detail.cohostPersonalityId == "David"
    assert detail.title == "Renamed"
    assert detail.transcript == [DialogueSegment(speaker="Arthur", line="New.")]
    assert run(repository.reset_for_regeneration("missing", "Arthur", "Chloe")) is None


def test_reset_for_regeneration_is_all_or_nothing(repository, session_factory):
    podcast = run(repository.create_initial("owner-1", SOURCE, "Arthur", "Chloe"))
    run(repository.update(podcast.id, audioUrl="data:audio/mp3;base64,AAAA", durationSeconds=9))
    run(repository.update_status(podcast.id, PodcastStatus.SUCCESS))

    def fail_flush(session, flush_context, instances):
        raise OperationalError("UPDATE podcasts", {}, Exception("disk I/O error"))

    event.listen(session_factory, "before_flush", fail_flush)
    try:
        with pytest.raises(PersistenceError):
            run(repository.reset_for_regeneration(
                podcast.id, "Arthur", "David", transcript=[{"speaker": "Arthur", "line": "New."}]
            ))
    finally:
        event.remove(session_factory, "before_flush", fail_flush)

    detail = run(repository.find_by_id(podcast.id))
    assert detail.status == PodcastStatus.SUCCESS
    assert detail.audioUrl == "data:audio/mp3;base64,AAAA"
    assert detail.cohostPersonalityId == "Chloe"
    assert detail.transcript == []
