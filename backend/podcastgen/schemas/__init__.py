# Re-export the pydantic schemas used across the API and the services.

from .podcast import PodcastInDB as PodcastSchema
from .podcast import PodcastDetail as PodcastDetailSchema
from .podcast import PersonalityInfo as PersonalitySchema
from .podcast import DialogueSegment, PodcastScript, PodcastStatus, SourceRef
