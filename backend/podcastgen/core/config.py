import os
import tempfile
from pydantic_settings import BaseSettings
from typing import Optional

# Get the root path of the project (the 'backend' directory)
PROJECT_ROOT = os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

class Settings(BaseSettings):
    """
    Pydantic settings class to manage application configuration.
    It automatically reads environment variables from a .env file.
    """
    # --- Core Application Settings ---
    PROJECT_NAME: str = "Podcast Generation API"
    API_V1_STR: str = "/api/v1"

    # --- Database Settings ---
    # The default URL points to a SQLite database file in the project's backend root.
    DATABASE_URL: str = f"sqlite:///{os.path.join(PROJECT_ROOT, 'podcasts.db')}"

    # --- Audio Settings ---
    AUDIO_FORMAT: str = "mp3"
    FFMPEG_BINARY: str = "ffmpeg"
    FFPROBE_BINARY: str = "ffprobe"
    # Scratch files for stitching and probing are written here and always removed afterwards.
    SCRATCH_DIR: str = tempfile.gettempdir()

    # --- Scraper Settings ---
    SCRAPER_TIMEOUT: int = 15
    SCRAPER_USER_AGENT: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/124.0 Safari/537.36"
    )

    # --- TTS Settings ---
    TTS_PROVIDER: str = "openai"
    TTS_CONCURRENCY: int = 5
    TTS_TIMEOUT: int = 30
    OPENAI_TTS_MODEL: str = "tts-1"
    GCP_TTS_LANGUAGE: Optional[str] = "en-US"
    AZURE_TTS_KEY: Optional[str] = None
    AZURE_TTS_ENDPOINT: Optional[str] = None
    AZURE_TTS_DEPLOYMENT: Optional[str] = "tts"
    AZURE_TTS_API_VERSION: Optional[str] = "2025-03-01-preview"
    ESPEAK_SPEED: Optional[int] = 150
    # Optional directory holding <provider>/<Personality>.<format> preview clips.
    PERSONALITY_PREVIEW_DIR: Optional[str] = None

    # --- LLM Settings ---
    LLM_PROVIDER: Optional[str] = None
    GEMINI_MODEL: Optional[str] = None
    LLM_TEMPERATURE: Optional[float] = None
    LLM_MAX_TOKENS: Optional[int] = None
    LLM_TIMEOUT: Optional[int] = None
    GOOGLE_API_KEY: Optional[str] = None
    GOOGLE_APPLICATION_CREDENTIALS: Optional[str] = None
    AZURE_OPENAI_KEY: Optional[str] = None
    AZURE_OPENAI_BASE: Optional[str] = None
    AZURE_API_VERSION: Optional[str] = None
    AZURE_DEPLOYMENT_NAME: Optional[str] = None
    OPENAI_MODEL: Optional[str] = None
    OPENAI_API_KEY: Optional[str] = None
    OPENAI_API_BASE: Optional[str] = None
    OLLAMA_MODEL: Optional[str] = None
    OLLAMA_BASE_URL: Optional[str] = None

    class Config:
        """
        Pydantic config subclass to specify the .env file location.
        """
        env_file = os.path.join(PROJECT_ROOT, ".env")
        env_file_encoding = 'utf-8'
        extra = "ignore" # Allow extra fields from .env to be ignored

# Instantiate the settings object that will be used throughout the application.
settings = Settings()
