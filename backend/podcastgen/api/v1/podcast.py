import logging
from typing import List

from fastapi import APIRouter, Depends, Header, HTTPException, Path, Response, status

from podcastgen.core.deps import get_podcast_service
from podcastgen.core.errors import NotFoundError, ValidationError
from podcastgen.schemas.podcast import (
    PersonalityInfo,
    PodcastCreateRequest,
    PodcastDetail,
    PodcastInDB,
    PodcastUpdateRequest,
)
from podcastgen.services.podcast_service import PodcastService

# Configure logger for this module
logger = logging.getLogger(__name__)

# Create a new router for this module.
router = APIRouter()


def get_owner_id(x_owner_id: str = Header(..., min_length=1, description="Identifier of the calling user.")) -> str:
    return x_owner_id


def _to_http_error(e: Exception, action: str) -> HTTPException:
    if isinstance(e, NotFoundError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=str(e))
    if isinstance(e, ValidationError):
        return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e))
    logger.error(f"API: An unexpected error occurred while {action}: {e}", exc_info=True)
    return HTTPException(
        status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
        detail=f"An internal error occurred while {action}: {str(e)}",
    )


@router.post(
    "",
    response_model=PodcastInDB,
    status_code=status.HTTP_202_ACCEPTED,
    summary="Create a podcast from a URL",
    description="Creates a podcast record in 'processing' state and generates the script and audio in the background. Poll the podcast to see when it reaches 'success' or 'failed'.",
)
async def create_podcast(
    *,
    podcast_in: PodcastCreateRequest,
    owner_id: str = Depends(get_owner_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    """
    Args:
        podcast_in (PodcastCreateRequest): Source URL and host personalities.
        owner_id (str): Taken from the X-Owner-Id header.
        podcast_service (PodcastService): Dependency for podcast operations.

    Returns:
        PodcastInDB: The initial 'processing' record.

    Raises:
        HTTPException: 400 for invalid personalities, 500 for unexpected errors.
    """
    logger.info(f"API: Received request to create podcast from {podcast_in.source_url} for owner {owner_id}")
    try:
        return await podcast_service.create_podcast(
            owner_id,
            podcast_in.source_url,
            podcast_in.host_personality_id,
            podcast_in.cohost_personality_id,
        )
    except Exception as e:
        raise _to_http_error(e, "creating the podcast")


@router.get("", response_model=List[PodcastInDB], summary="List the caller's podcasts")
async def list_podcasts(
    owner_id: str = Depends(get_owner_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    try:
        return await podcast_service.list_podcasts(owner_id)
    except Exception as e:
        raise _to_http_error(e, "listing podcasts")


@router.get("/personalities", response_model=List[PersonalityInfo], summary="List the available host personalities")
async def list_personalities(podcast_service: PodcastService = Depends(get_podcast_service)):
    return await podcast_service.get_available_personalities()


@router.get("/{podcast_id}", response_model=PodcastDetail, summary="Get a podcast with transcript and tags")
async def get_podcast(
    podcast_id: str = Path(..., description="The ID of the podcast."),
    owner_id: str = Depends(get_owner_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    try:
        return await podcast_service.get_podcast(owner_id, podcast_id)
    except Exception as e:
        raise _to_http_error(e, f"fetching podcast {podcast_id}")


@router.patch(
    "/{podcast_id}",
    response_model=PodcastInDB,
    summary="Edit a podcast",
    description="Updates title, summary, dialogue or voices. Dialogue or voice changes regenerate the audio in the background.",
)
async def update_podcast(
    *,
    podcast_id: str = Path(..., description="The ID of the podcast."),
    podcast_in: PodcastUpdateRequest,
    owner_id: str = Depends(get_owner_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    logger.info(f"API: Received update for podcast {podcast_id} from owner {owner_id}")
    try:
        return await podcast_service.update_podcast(
            owner_id,
            podcast_id,
            title=podcast_in.title,
            summary=podcast_in.summary,
            dialogue=podcast_in.dialogue,
            host_personality_id=podcast_in.host_personality_id,
            cohost_personality_id=podcast_in.cohost_personality_id,
        )
    except Exception as e:
        raise _to_http_error(e, f"updating podcast {podcast_id}")


@router.delete("/{podcast_id}", status_code=status.HTTP_204_NO_CONTENT, summary="Delete a podcast")
async def delete_podcast(
    podcast_id: str = Path(..., description="The ID of the podcast."),
    owner_id: str = Depends(get_owner_id),
    podcast_service: PodcastService = Depends(get_podcast_service),
):
    try:
        await podcast_service.delete_podcast(owner_id, podcast_id)
    except Exception as e:
        raise _to_http_error(e, f"deleting podcast {podcast_id}")
    return Response(status_code=status.HTTP_204_NO_CONTENT)
