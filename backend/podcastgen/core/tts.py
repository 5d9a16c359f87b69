import asyncio
import io
import logging
import os
import subprocess
import tempfile
from typing import Optional

import requests

from podcastgen.core.config import Settings, settings as app_settings

logger = logging.getLogger(__name__)

SUPPORTED_PROVIDERS = ("openai", "azure", "gcp", "local")


class TTSError(RuntimeError):
    """Raised when a speech-synthesis provider call fails."""
    pass


class TTSService:
    """
    Text-to-speech client over several providers.

    Every provider call is blocking (HTTP, gRPC or a subprocess), so
    `synthesize` runs it in a worker thread and returns the raw audio bytes.
    """

    def __init__(
        self,
        provider: str = "openai",
        timeout: int = 30,
        openai_api_key: Optional[str] = None,
        openai_api_base: str = "https://api.openai.com/v1",
        openai_model: str = "tts-1",
        azure_key: Optional[str] = None,
        azure_endpoint: Optional[str] = None,
        azure_deployment: Optional[str] = "tts",
        azure_api_version: Optional[str] = "2025-03-01-preview",
        gcp_language: str = "en-US",
        espeak_speed: int = 150,
    ):
        provider = (provider or "").lower()
        if provider not in SUPPORTED_PROVIDERS:
            raise ValueError(f"Unsupported TTS_PROVIDER: {provider}")
        self.provider = provider
        self.timeout = timeout
        self.openai_api_key = openai_api_key
        self.openai_api_base = openai_api_base.rstrip("/")
        self.openai_model = openai_model
        self.azure_key = azure_key
        self.azure_endpoint = azure_endpoint.rstrip("/") if azure_endpoint else None
        self.azure_deployment = azure_deployment
        self.azure_api_version = azure_api_version
        self.gcp_language = gcp_language
        self.espeak_speed = espeak_speed
        logger.info(f"TTSService: Initialized with provider '{self.provider}'.")

    @classmethod
    def from_settings(cls, settings: Settings = app_settings) -> "TTSService":
        return cls(
            provider=settings.TTS_PROVIDER,
            timeout=settings.TTS_TIMEOUT,
            openai_api_key=settings.OPENAI_API_KEY,
            openai_api_base=settings.OPENAI_API_BASE or "https://api.openai.com/v1",
            openai_model=settings.OPENAI_TTS_MODEL,
            azure_key=settings.AZURE_TTS_KEY,
            azure_endpoint=settings.AZURE_TTS_ENDPOINT,
            azure_deployment=settings.AZURE_TTS_DEPLOYMENT,
            azure_api_version=settings.AZURE_TTS_API_VERSION,
            gcp_language=settings.GCP_TTS_LANGUAGE or "en-US",
            espeak_speed=settings.ESPEAK_SPEED or 150,
        )

    def active_provider(self) -> str:
        return self.provider

    async def synthesize(self, text: str, voice: str, format: str = "mp3", speed: Optional[float] = None) -> bytes:
        """
        Synthesize `text` with the given provider-specific voice.

        Raises:
            ValueError: if the text is empty.
            TTSError: if the provider call fails.
        """
        if not text or not text.strip():
            raise ValueError("Text cannot be empty")
        return await asyncio.to_thread(self._synthesize_sync, text, voice, format, speed)

    def _synthesize_sync(self, text: str, voice: str, audio_format: str, speed: Optional[float]) -> bytes:
        if self.provider == "openai":
            return self._openai_tts(text, voice, audio_format, speed)
        if self.provider == "azure":
            return self._azure_tts(text, voice, audio_format, speed)
        if self.provider == "gcp":
            return self._gcp_tts(text, voice, audio_format, speed)
        return self._local_tts(text, voice, audio_format, speed)

    def _post_speech(self, url: str, headers: dict, body: dict, label: str) -> bytes:
        try:
            response = requests.post(url, headers=headers, json=body, timeout=self.timeout)
            response.raise_for_status()
        except requests.exceptions.RequestException as e:
            raise TTSError(f"{label} TTS failed: {e}") from e
        return response.content

    def _openai_tts(self, text: str, voice: str, audio_format: str, speed: Optional[float]) -> bytes:
        """Generate audio using the OpenAI speech endpoint."""
        if not self.openai_api_key:
            raise TTSError("OPENAI_API_KEY must be set for OpenAI TTS")
        body = {"model": self.openai_model, "input": text, "voice": voice, "response_format": audio_format}
        if speed is not None:
            body["speed"] = speed
        headers = {"Authorization": f"Bearer {self.openai_api_key}", "Content-Type": "application/json"}
        return self._post_speech(f"{self.openai_api_base}/audio/speech", headers, body, "OpenAI")

    def _azure_tts(self, text: str, voice: str, audio_format: str, speed: Optional[float]) -> bytes:
        """Generate audio using Azure OpenAI TTS."""
        if not all([self.azure_key, self.azure_endpoint, self.azure_deployment, self.azure_api_version]):
            raise TTSError("AZURE_TTS_KEY, AZURE_TTS_ENDPOINT, AZURE_TTS_DEPLOYMENT, and AZURE_TTS_API_VERSION must be set for Azure OpenAI TTS")
        url = f"{self.azure_endpoint}/openai/deployments/{self.azure_deployment}/audio/speech?api-version={self.azure_api_version}"
        body = {"model": self.azure_deployment, "input": text, "voice": voice, "response_format": audio_format}
        if speed is not None:
            body["speed"] = speed
        headers = {"api-key": self.azure_key, "Content-Type": "application/json"}
        return self._post_speech(url, headers, body, "Azure")

    def _gcp_tts(self, text: str, voice: str, audio_format: str, speed: Optional[float]) -> bytes:
        """Generate audio using Google Cloud TTS."""
        from google.cloud import texttospeech

        encodings = {
            "mp3": texttospeech.AudioEncoding.MP3,
            "wav": texttospeech.AudioEncoding.LINEAR16,
            "ogg": texttospeech.AudioEncoding.OGG_OPUS,
        }
        encoding = encodings.get(audio_format)
        if encoding is None:
            raise TTSError(f"Google Cloud TTS does not support format '{audio_format}'")

        try:
            client = texttospeech.TextToSpeechClient()
            response = client.synthesize_speech(
                input=texttospeech.SynthesisInput(text=text),
                voice=texttospeech.VoiceSelectionParams(language_code=self.gcp_language, name=voice),
                audio_config=texttospeech.AudioConfig(audio_encoding=encoding, speaking_rate=speed or 1.0),
                timeout=self.timeout,
            )
        except Exception as e:
            raise TTSError(f"Google Cloud TTS failed: {e}") from e
        return response.audio_content

    def _local_tts(self, text: str, voice: str, audio_format: str, speed: Optional[float]) -> bytes:
        """Generate audio using local espeak-ng, transcoded with pydub."""
        from pydub import AudioSegment

        espeak_speed = int(self.espeak_speed * speed) if speed else self.espeak_speed
        fd, wav_path = tempfile.mkstemp(suffix=".wav", prefix="tts-local-")
        os.close(fd)
        try:
            cmd = ["espeak-ng", "-v", voice, "-s", str(espeak_speed), "-w", wav_path, text]
            subprocess.run(cmd, capture_output=True, text=True, timeout=self.timeout, check=True)
            if audio_format == "wav":
                with open(wav_path, "rb") as f:
                    return f.read()
            out = io.BytesIO()
            AudioSegment.from_wav(wav_path).export(out, format=audio_format)
            return out.getvalue()
        except FileNotFoundError as e:
            raise TTSError("espeak-ng not found. Please install it.") from e
        except (subprocess.SubprocessError, OSError) as e:
            raise TTSError(f"Local TTS synthesis error: {e}") from e
        finally:
            try:
                os.remove(wav_path)
            except FileNotFoundError:
                pass
