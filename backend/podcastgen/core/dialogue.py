import asyncio
import logging
from typing import Any, Dict, List, Mapping, Optional, Protocol, Sequence, Union

from pydantic import ValidationError as PydanticValidationError

from podcastgen.core.errors import SegmentSynthesisError
from podcastgen.schemas.podcast import DialogueSegment

logger = logging.getLogger(__name__)

DEFAULT_CONCURRENCY = 5


class SpeechSynthesizer(Protocol):
    async def synthesize(self, text: str, voice: str, format: str = "mp3", speed: Optional[float] = None) -> bytes: ...


class DialogueSynthesizer:
    """
    Synthesizes one audio buffer per dialogue line.

    Calls are fanned out under a fixed concurrency bound. The result list is
    index-aligned with the input; a line that is empty or fails to synthesize
    yields `None` at its position and never aborts its siblings.
    """

    def __init__(self, tts: SpeechSynthesizer, concurrency: int = DEFAULT_CONCURRENCY, audio_format: str = "mp3"):
        if concurrency < 1:
            raise ValueError("concurrency must be at least 1")
        self.tts = tts
        self.concurrency = concurrency
        self.audio_format = audio_format

    async def synthesize(
        self,
        dialogue: Sequence[Union[DialogueSegment, Mapping[str, Any], None]],
        voice_map: Dict[str, str],
        default_voice: str,
    ) -> List[Optional[bytes]]:
        total = len(dialogue)
        logger.info(f"DialogueSynthesizer: Starting TTS synthesis for {total} segments (concurrency={self.concurrency}).")
        semaphore = asyncio.Semaphore(self.concurrency)

        async def synthesize_one(index: int, segment: Union[DialogueSegment, Mapping[str, Any], None]) -> Optional[bytes]:
            if isinstance(segment, Mapping):
                try:
                    segment = DialogueSegment.model_validate(segment)
                except PydanticValidationError as e:
                    logger.warning(f"DialogueSynthesizer: Skipping malformed segment at index {index}: {e}")
                    return None
            line = getattr(segment, "line", None)
            if not line or not line.strip():
                logger.warning(f"DialogueSynthesizer: Skipping empty segment at index {index}.")
                return None

            speaker = segment.speaker
            voice = voice_map.get(speaker)
            if voice is None:
                logger.warning(f"DialogueSynthesizer: Speaker '{speaker}' not found in voice map, using default voice '{default_voice}'.")
                voice = default_voice

            async with semaphore:
                logger.debug(f"DialogueSynthesizer: Synthesizing segment {index + 1}/{total} for speaker '{speaker}' with voice '{voice}'.")
                try:
                    return await self.tts.synthesize(line, voice=voice, format=self.audio_format)
                except Exception as e:
                    failure = SegmentSynthesisError(index, speaker, voice, e)
                    logger.error(f"DialogueSynthesizer: {failure}", exc_info=True)
                    return None

        results = await asyncio.gather(*(synthesize_one(i, s) for i, s in enumerate(dialogue)))
        succeeded = sum(1 for r in results if r is not None)
        logger.info(f"DialogueSynthesizer: TTS synthesis finished. {succeeded}/{total} segments synthesized successfully.")
        return list(results)
