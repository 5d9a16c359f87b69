"""
Static catalog of host personalities and their per-provider voices.

Voice handles live in one table keyed by (provider, personality id); a
missing entry is an explicit "not found" (`None`), never a silent fallback.
"""

import base64
import logging
import threading
from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional, Tuple

from podcastgen.core.errors import PersonalityNotFoundError
from podcastgen.schemas.podcast import PersonalityInfo

logger = logging.getLogger(__name__)


class PersonalityId(str, Enum):
    ARTHUR = "Arthur"
    CHLOE = "Chloe"
    MAYA = "Maya"
    SAM = "Sam"
    EVELYN = "Evelyn"
    DAVID = "David"


@dataclass(frozen=True)
class Personality:
    id: PersonalityId
    description: str
    preview_phrase: str

    @property
    def name(self) -> str:
        return self.id.value


PERSONALITIES: Dict[PersonalityId, Personality] = {p.id: p for p in [
    Personality(
        PersonalityId.ARTHUR,
        "The Erudite Analyst: Delivers insights with precision and depth, often referencing historical context or academic research. Speaks thoughtfully and perhaps a bit formally.",
        "Indeed, the historical data suggests a compelling trend.",
    ),
    Personality(
        PersonalityId.CHLOE,
        "The Witty Commentator: Quick with a clever quip or sarcastic observation, finding humor in the details and keeping the conversation light and engaging.",
        "Well, isn't that just fascinatingly predictable?",
    ),
    Personality(
        PersonalityId.MAYA,
        "The Passionate Advocate: Speaks with infectious energy and optimism. Finds the exciting angle in any topic and isn't afraid to show her passion.",
        "This is incredibly exciting! Think of the possibilities!",
    ),
    Personality(
        PersonalityId.SAM,
        "The Measured Moderator: Calm, thoughtful, and objective. Ensures all sides are considered, often summarizing complex points clearly and providing a steadying presence.",
        "Let's consider the key points from a balanced perspective.",
    ),
    Personality(
        PersonalityId.EVELYN,
        "The Sharp Skeptic: Analytical and questioning, probes assumptions and challenges conventional wisdom, bringing a critical eye and encouraging deeper thought.",
        "Are we certain that assumption holds true under scrutiny?",
    ),
    Personality(
        PersonalityId.DAVID,
        "The Relatable Storyteller: Warm, approachable, and focuses on the human angle. Connects the topic to everyday experiences and tells compelling anecdotes.",
        "It really makes you think about how this affects everyday people, doesn't it?",
    ),
]}


# (provider, personality) -> provider-specific voice handle
VOICE_HANDLES: Dict[Tuple[str, PersonalityId], str] = {
    ("openai", PersonalityId.ARTHUR): "echo",
    ("openai", PersonalityId.CHLOE): "nova",
    ("openai", PersonalityId.MAYA): "shimmer",
    ("openai", PersonalityId.SAM): "alloy",
    ("openai", PersonalityId.EVELYN): "fable",
    ("openai", PersonalityId.DAVID): "onyx",
    # Azure OpenAI deployments expose the same voice names
    ("azure", PersonalityId.ARTHUR): "echo",
    ("azure", PersonalityId.CHLOE): "nova",
    ("azure", PersonalityId.MAYA): "shimmer",
    ("azure", PersonalityId.SAM): "alloy",
    ("azure", PersonalityId.EVELYN): "fable",
    ("azure", PersonalityId.DAVID): "onyx",
    ("gcp", PersonalityId.ARTHUR): "en-US-Wavenet-D",
    ("gcp", PersonalityId.CHLOE): "en-US-Wavenet-C",
    ("gcp", PersonalityId.MAYA): "en-US-Wavenet-F",
    ("gcp", PersonalityId.SAM): "en-US-Wavenet-A",
    ("gcp", PersonalityId.EVELYN): "en-US-Wavenet-E",
    ("gcp", PersonalityId.DAVID): "en-US-Wavenet-B",
    ("local", PersonalityId.ARTHUR): "en-us",
    ("local", PersonalityId.CHLOE): "en-us+f3",
    ("local", PersonalityId.MAYA): "en-us+f4",
    ("local", PersonalityId.SAM): "en-gb",
    ("local", PersonalityId.EVELYN): "en-gb+f2",
    ("local", PersonalityId.DAVID): "en-us+m3",
}


@dataclass(frozen=True)
class ResolvedVoice:
    """A personality together with the voice handle for one provider."""
    personality: Personality
    voice: str

    @property
    def name(self) -> str:
        return self.personality.name

    @property
    def description(self) -> str:
        return self.personality.description


def parse_personality_id(value) -> Optional[PersonalityId]:
    """Return the PersonalityId for `value`, or None if it is not in the catalog."""
    if isinstance(value, PersonalityId):
        return value
    try:
        return PersonalityId(value)
    except ValueError:
        return None


def voice_handle(provider: str, personality_id) -> Optional[str]:
    """Look up the voice handle; None when the pair is not in the table."""
    pid = parse_personality_id(personality_id)
    if pid is None:
        return None
    return VOICE_HANDLES.get((provider, pid))


def resolve_voice(provider: str, personality_id) -> ResolvedVoice:
    """
    Resolve a personality for the given provider.

    Raises:
        PersonalityNotFoundError: if the id is unknown or the provider has no voice for it.
    """
    pid = parse_personality_id(personality_id)
    if pid is None:
        raise PersonalityNotFoundError(f"Unknown personality id: {personality_id!r}")
    handle = VOICE_HANDLES.get((provider, pid))
    if handle is None:
        raise PersonalityNotFoundError(f"Personality {pid.value} is not mapped to a voice for TTS provider '{provider}'")
    return ResolvedVoice(PERSONALITIES[pid], handle)


class PersonalityCatalog:
    """
    Enriches the catalog for a provider (voice name plus optional preview audio)
    and memoizes the result for the provider it was computed for.

    The memo holds a single provider's result: asking for a different provider
    recomputes, and `invalidate()` drops it. Failed enrichments are not cached.
    """

    def __init__(self, preview_dir: Optional[str] = None, audio_format: str = "mp3"):
        self.preview_dir = Path(preview_dir) if preview_dir else None
        self.audio_format = audio_format
        self._lock = threading.Lock()
        self._cached_provider: Optional[str] = None
        self._cached: Optional[List[PersonalityInfo]] = None

    def invalidate(self) -> None:
        with self._lock:
            self._cached_provider = None
            self._cached = None

    def list_for_provider(self, provider: str) -> List[PersonalityInfo]:
        with self._lock:
            if self._cached is not None and self._cached_provider == provider:
                logger.debug(f"PersonalityCatalog: Returning cached personalities for provider '{provider}'.")
                return list(self._cached)

        logger.info(f"PersonalityCatalog: Enriching personalities for provider '{provider}'.")
        enriched = [self._enrich(p, provider) for p in PERSONALITIES.values()]

        with self._lock:
            self._cached_provider = provider
            self._cached = enriched
        return list(enriched)

    def _enrich(self, personality: Personality, provider: str) -> PersonalityInfo:
        return PersonalityInfo(
            id=personality.id.value,
            name=personality.name,
            description=personality.description,
            previewPhrase=personality.preview_phrase,
            voiceName=voice_handle(provider, personality.id),
            previewAudioUrl=self._load_preview(personality, provider),
        )

    def _load_preview(self, personality: Personality, provider: str) -> Optional[str]:
        if self.preview_dir is None:
            return None
        preview_path = self.preview_dir / provider / f"{personality.name}.{self.audio_format}"
        try:
            data = preview_path.read_bytes()
        except FileNotFoundError:
            logger.warning(f"PersonalityCatalog: Preview audio not found for {personality.name} at {preview_path}.")
            return None
        except OSError as e:
            logger.error(f"PersonalityCatalog: Error reading preview audio for {personality.name} at {preview_path}: {e}")
            return None
        return f"data:audio/{self.audio_format};base64,{base64.b64encode(data).decode('ascii')}"
