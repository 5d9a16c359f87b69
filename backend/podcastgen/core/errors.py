"""
Error taxonomy for the podcast generation pipeline.

Prompt errors (`InputValidationError`, `ModelError`, `ParseError`,
`OutputValidationError`) are returned inside a `PromptResult` rather than
raised. Everything else is raised and caught once by the generation service,
which turns it into the podcast's persisted error message.
"""

from typing import Dict, Optional


class PodcastGenError(Exception):
    """Base exception for all pipeline errors."""
    pass


# --- Prompt Engine ---

class PromptError(PodcastGenError):
    """Base class for failures classified by the prompt engine."""

    def __init__(self, message: str, prompt_name: Optional[str] = None):
        super().__init__(message)
        self.prompt_name = prompt_name

    @property
    def kind(self) -> str:
        return type(self).__name__


class InputValidationError(PromptError):
    """Prompt parameters failed the input schema. The model was not called."""

    def __init__(self, message: str, field_errors: Dict[str, str], prompt_name: Optional[str] = None):
        super().__init__(message, prompt_name)
        self.field_errors = field_errors


class ModelError(PromptError):
    """The language model call failed or returned empty content."""
    pass


class ParseError(PromptError):
    """The model output was not valid JSON after fence stripping."""

    def __init__(self, message: str, snippet: str, prompt_name: Optional[str] = None):
        super().__init__(message, prompt_name)
        self.snippet = snippet


class OutputValidationError(PromptError):
    """The parsed JSON did not satisfy the output schema."""

    def __init__(self, message: str, field_errors: Dict[str, str], prompt_name: Optional[str] = None):
        super().__init__(message, prompt_name)
        self.field_errors = field_errors


# --- Synthesis / assembly ---

class SegmentSynthesisError(PodcastGenError):
    """A single dialogue line could not be synthesized. Soft: logged, never raised."""

    def __init__(self, index: int, speaker: str, voice: str, cause: BaseException):
        super().__init__(f"Segment {index} (speaker '{speaker}', voice '{voice}') failed: {cause}")
        self.index = index
        self.speaker = speaker
        self.voice = voice
        self.cause = cause


class AssemblyError(PodcastGenError):
    """Stitching or probing failed in a way that aborts the run."""
    pass


# --- Collaborators ---

class PersistenceError(PodcastGenError):
    """A write or read through the podcast repository failed."""
    pass


class ScraperError(PodcastGenError):
    """Fetching source content failed."""

    def __init__(self, message: str, url: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code


class PersonalityNotFoundError(PodcastGenError):
    """A personality id is unknown or has no voice for the active TTS provider."""
    pass


class ScriptGenerationError(PodcastGenError):
    """Raised by the generation service when the script prompt does not yield a structured result."""

    def __init__(self, prompt_error: Optional[PromptError]):
        if prompt_error is None:
            message = "Podcast script generation failed: LLM did not return valid structured output."
        else:
            message = f"Podcast script generation failed: {prompt_error.kind}: {prompt_error}"
        super().__init__(message)
        self.prompt_error = prompt_error


# --- Facade ---

class NotFoundError(PodcastGenError):
    """The requested podcast does not exist or is not visible to the caller."""
    pass


class ValidationError(PodcastGenError):
    """A request to the podcast service is invalid."""
    pass
