from pydantic import BaseModel, Field, ConfigDict, model_validator
from typing import Optional, List
from datetime import datetime
from enum import Enum


class PodcastStatus(str, Enum):
    PROCESSING = "processing"
    SUCCESS = "success"
    FAILED = "failed"


class SourceRef(BaseModel):
    """
    Where a podcast's content comes from. `kind` is 'url' for scraped pages
    or 'text' for content supplied inline.
    """
    kind: str = Field("url", description="The kind of source ('url' or 'text').")
    detail: str = Field(..., min_length=1, description="The URL or the raw text itself.")


# --- Script models (LLM structured output) ---
class DialogueSegment(BaseModel):
    """
    A single turn of scripted speech.
    """
    speaker: str = Field(..., description="The name of the speaker for this line.")
    line: str = Field(..., min_length=1, description="The text spoken in this turn.")


class PodcastScript(BaseModel):
    """
    The structured output expected from the script generation prompt.
    """
    title: str = Field(..., min_length=1, description="A short, catchy title for the episode.")
    summary: str = Field(..., min_length=1, max_length=300, description="A summary of the episode, no more than 240 characters.")
    tags: List[str] = Field(..., min_length=1, description="Tags describing the main ideas of the topic.")
    dialogue: List[DialogueSegment] = Field(..., min_length=1, description="The ordered dialogue between the two hosts.")


class PodcastScriptParams(BaseModel):
    """
    Input parameters for the script generation prompt.
    """
    html_content: str = Field(..., min_length=1)
    host_name: str = Field(..., min_length=1)
    host_personality_description: str = Field(..., min_length=1)
    cohost_name: str = Field(..., min_length=1)
    cohost_personality_description: str = Field(..., min_length=1)


# --- Request Models ---
class PodcastCreateRequest(BaseModel):
    """
    Pydantic model for the request body to create a podcast.
    """
    source_url: str = Field(..., min_length=1, description="The URL of the article to turn into a podcast.")
    host_personality_id: str = Field("Arthur", description="The personality voicing the host.")
    cohost_personality_id: str = Field("Chloe", description="The personality voicing the co-host.")

    @model_validator(mode="after")
    def check_distinct_hosts(self):
        if self.host_personality_id == self.cohost_personality_id:
            raise ValueError("Host and cohost personalities must be different.")
        return self


class PodcastUpdateRequest(BaseModel):
    """
    Pydantic model for editing a podcast. Every field is optional; a changed
    dialogue or voice triggers audio regeneration.
    """
    title: Optional[str] = Field(None, min_length=1)
    summary: Optional[str] = Field(None, min_length=1)
    dialogue: Optional[List[DialogueSegment]] = Field(None, min_length=1)
    host_personality_id: Optional[str] = None
    cohost_personality_id: Optional[str] = None


# --- Response Models ---
class PodcastInDB(BaseModel):
    """
    Pydantic model representing a podcast as stored in the database.
    This model is used for API responses.
    """
    id: str = Field(..., description="The unique identifier for the podcast.")
    ownerId: str = Field(..., description="The user that owns the podcast.")
    title: str
    summary: str = ""
    status: PodcastStatus
    sourceType: Optional[str] = None
    sourceDetail: Optional[str] = None
    hostPersonalityId: str
    cohostPersonalityId: str
    audioUrl: Optional[str] = Field(None, description="The encoded audio artifact.")
    durationSeconds: Optional[int] = Field(None, description="The length of the audio in seconds.")
    errorMessage: Optional[str] = None
    generatedAt: Optional[datetime] = None
    createdAt: Optional[datetime] = None
    updatedAt: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class PodcastDetail(PodcastInDB):
    """
    A podcast together with its transcript and tags.
    """
    transcript: List[DialogueSegment] = Field(default_factory=list)
    tags: List[str] = Field(default_factory=list)


class PersonalityInfo(BaseModel):
    """
    A catalog personality, enriched for the active TTS provider.
    """
    id: str
    name: str
    description: str
    previewPhrase: Optional[str] = None
    voiceName: Optional[str] = None
    previewAudioUrl: Optional[str] = None
