import logging
from typing import List, Dict, Any, Optional, Union
from dataclasses import dataclass, field
from enum import Enum

# LangChain is used as an abstraction layer to interact with various LLM providers.
# This makes it easy to switch between models like Gemini, OpenAI, etc.
from langchain_openai import ChatOpenAI, AzureChatOpenAI
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_community.chat_models import ChatOllama
from langchain_core.messages import HumanMessage, SystemMessage, AIMessage

from podcastgen.core.config import Settings, settings as app_settings

logger = logging.getLogger(__name__)


class LLMProvider(Enum):
    """Supported LLM providers."""
    GEMINI = "gemini"
    AZURE = "azure"
    OPENAI = "openai"
    OLLAMA = "ollama"


@dataclass
class LLMConfig:
    """Configuration for LLM providers."""
    provider: LLMProvider
    model: str
    temperature: float = 0.7
    max_tokens: Optional[int] = None
    timeout: int = 30

    # Provider-specific configs
    api_key: Optional[str] = None
    api_base: Optional[str] = None
    api_version: Optional[str] = None
    deployment_name: Optional[str] = None
    credentials_path: Optional[str] = None


@dataclass
class ChatOptions:
    """Per-call options. `None` means 'use whatever the caller below decides'."""
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    top_p: Optional[float] = None
    system_prompt: Optional[str] = None
    model: Optional[str] = None

    def merged_with(self, overrides: Optional["ChatOptions"]) -> "ChatOptions":
        """Return a copy where every non-None field of `overrides` wins."""
        if overrides is None:
            return ChatOptions(**self.__dict__)
        merged = dict(self.__dict__)
        merged.update({k: v for k, v in overrides.__dict__.items() if v is not None})
        return ChatOptions(**merged)


@dataclass
class ChatResponse:
    """Raw result of a chat completion. `error` is set instead of raising."""
    content: Optional[str]
    usage: Dict[str, int] = field(default_factory=dict)
    error: Optional[str] = None


class LLMError(Exception):
    """Base exception for LLM-related errors."""
    pass


class ConfigurationError(LLMError):
    """Raised when LLM configuration is invalid."""
    pass


# Per-provider name of the max-token field on the LangChain chat model.
_MAX_TOKENS_FIELD = {
    LLMProvider.GEMINI: "max_output_tokens",
    LLMProvider.AZURE: "max_tokens",
    LLMProvider.OPENAI: "max_tokens",
    LLMProvider.OLLAMA: "num_predict",
}


class LLMManager:
    """
    Unified async chat-completion client over several LangChain providers.

    `chat_completion` never raises for provider failures; they are reported
    in `ChatResponse.error` so the prompt engine can classify them.
    """

    DEFAULT_MODELS = {
        LLMProvider.GEMINI: "gemini-2.5-flash",
        LLMProvider.AZURE: "gpt-4o",
        LLMProvider.OPENAI: "gpt-4o",
        LLMProvider.OLLAMA: "llama3",
    }

    def __init__(self, config: LLMConfig, llm: Any = None):
        """Initialize LLM Manager with configuration. `llm` may be injected for tests."""
        self.config = config
        logger.debug(f"LLMManager: Initializing for provider: {self.config.provider.value}")
        self._validate_config()
        self.llm = llm if llm is not None else self._initialize_llm()
        logger.info(f"LLMManager: LLM initialized for provider: {self.config.provider.value}, model: {self.config.model}")

    @classmethod
    def from_settings(cls, settings: Settings = app_settings, provider: Optional[str] = None) -> "LLMManager":
        """Create LLMManager from application settings."""
        return cls(cls.config_from_settings(settings, provider))

    @classmethod
    def config_from_settings(cls, settings: Settings, provider: Optional[str] = None) -> LLMConfig:
        """Build an LLMConfig from the settings object."""
        provider_str = provider or settings.LLM_PROVIDER or "gemini"
        try:
            provider_enum = LLMProvider(provider_str.lower())
        except ValueError as e:
            valid_providers = [p.value for p in LLMProvider]
            logger.error(f"LLMManager: Invalid LLM_PROVIDER: '{provider_str}'. Valid options: {valid_providers}")
            raise ConfigurationError(
                f"Invalid LLM_PROVIDER: {provider_str}. "
                f"Valid options: {valid_providers}"
            ) from e

        common = dict(
            provider=provider_enum,
            temperature=settings.LLM_TEMPERATURE if settings.LLM_TEMPERATURE is not None else 0.7,
            max_tokens=settings.LLM_MAX_TOKENS,
            timeout=settings.LLM_TIMEOUT or 30,
        )

        if provider_enum == LLMProvider.GEMINI:
            return LLMConfig(
                model=settings.GEMINI_MODEL or cls.DEFAULT_MODELS[provider_enum],
                api_key=settings.GOOGLE_API_KEY,
                credentials_path=settings.GOOGLE_APPLICATION_CREDENTIALS,
                **common,
            )
        if provider_enum == LLMProvider.AZURE:
            deployment_name = settings.AZURE_DEPLOYMENT_NAME or cls.DEFAULT_MODELS[provider_enum]
            return LLMConfig(
                model=deployment_name, # Use deployment_name as model for Azure
                api_key=settings.AZURE_OPENAI_KEY,
                api_base=settings.AZURE_OPENAI_BASE,
                api_version=settings.AZURE_API_VERSION,
                deployment_name=deployment_name,
                **common,
            )
        if provider_enum == LLMProvider.OPENAI:
            return LLMConfig(
                model=settings.OPENAI_MODEL or cls.DEFAULT_MODELS[provider_enum],
                api_key=settings.OPENAI_API_KEY,
                api_base=settings.OPENAI_API_BASE or "https://api.openai.com/v1",
                **common,
            )
        return LLMConfig(
            model=settings.OLLAMA_MODEL or cls.DEFAULT_MODELS[provider_enum],
            api_base=settings.OLLAMA_BASE_URL or "http://localhost:11434",
            **common,
        )

    def _validate_config(self) -> None:
        """Validate the current configuration."""
        if self.config.provider == LLMProvider.GEMINI:
            if not (self.config.api_key or self.config.credentials_path):
                raise ConfigurationError("Gemini requires either GOOGLE_API_KEY or GOOGLE_APPLICATION_CREDENTIALS.")
        elif self.config.provider == LLMProvider.AZURE:
            missing = [var for var in ["api_key", "api_base", "api_version", "deployment_name"] if not getattr(self.config, var)]
            if missing:
                raise ConfigurationError(f"Missing required Azure config: {missing}")
        elif self.config.provider == LLMProvider.OPENAI:
            if not self.config.api_key:
                raise ConfigurationError("OpenAI requires OPENAI_API_KEY.")
        elif self.config.provider == LLMProvider.OLLAMA:
            if not self.config.api_base:
                raise ConfigurationError("Ollama requires OLLAMA_BASE_URL.")

    def _initialize_llm(self):
        """Initialize the appropriate LLM client."""
        cfg = self.config
        try:
            if cfg.provider == LLMProvider.GEMINI:
                return ChatGoogleGenerativeAI(model=cfg.model, temperature=cfg.temperature, google_api_key=cfg.api_key, timeout=cfg.timeout)
            if cfg.provider == LLMProvider.AZURE:
                return AzureChatOpenAI(azure_deployment=cfg.deployment_name, openai_api_version=cfg.api_version, azure_endpoint=cfg.api_base, api_key=cfg.api_key, temperature=cfg.temperature, timeout=cfg.timeout)
            if cfg.provider == LLMProvider.OPENAI:
                return ChatOpenAI(model=cfg.model, api_key=cfg.api_key, base_url=cfg.api_base, temperature=cfg.temperature, timeout=cfg.timeout)
            return ChatOllama(model=cfg.model, base_url=cfg.api_base, temperature=cfg.temperature)
        except Exception as e:
            logger.critical(f"LLMManager: Failed to initialize {cfg.provider.value} LLM: {e}")
            raise ConfigurationError(f"Failed to initialize {cfg.provider.value} LLM: {e}") from e

    def _format_messages(self, messages: List[Dict[str, str]]) -> List[Union[HumanMessage, SystemMessage, AIMessage]]:
        """Convert message dictionaries to LangChain message objects."""
        formatted_messages = []
        for msg in messages:
            role, content = msg.get("role", "").lower(), msg.get("content", "")
            if role == "system": formatted_messages.append(SystemMessage(content=content))
            elif role in ("user", "human"): formatted_messages.append(HumanMessage(content=content))
            elif role in ("assistant", "ai"): formatted_messages.append(AIMessage(content=content))
            else: logger.warning(f"LLMManager: Unknown message role: {role}, treating as human."); formatted_messages.append(HumanMessage(content=content))
        return formatted_messages

    def _model_for(self, options: ChatOptions):
        """Return the chat model with per-call overrides applied."""
        update: Dict[str, Any] = {}
        if options.temperature is not None:
            update["temperature"] = options.temperature
        if options.max_tokens is not None:
            update[_MAX_TOKENS_FIELD[self.config.provider]] = options.max_tokens
        if options.top_p is not None:
            update["top_p"] = options.top_p
        if not update or not hasattr(self.llm, "model_copy"):
            return self.llm
        return self.llm.model_copy(update=update)

    async def chat_completion(
        self,
        prompt_or_messages: Union[str, List[Dict[str, str]]],
        options: Optional[ChatOptions] = None,
    ) -> ChatResponse:
        """
        Run one chat completion.

        A plain string is sent as a single user message, preceded by the
        system prompt from `options` when one is given.
        """
        options = options or ChatOptions()
        if isinstance(prompt_or_messages, str):
            messages = [{"role": "user", "content": prompt_or_messages}]
        else:
            messages = list(prompt_or_messages)
        if options.system_prompt and not any(m.get("role") == "system" for m in messages):
            messages.insert(0, {"role": "system", "content": options.system_prompt})

        try:
            llm = self._model_for(options)
            logger.info(f"LLMManager: Calling {self.config.provider.value} with {len(messages)} messages.")
            response = await llm.ainvoke(self._format_messages(messages))
        except Exception as e:
            error_msg = f"{self.config.provider.value} call failed: {e}"
            logger.error(f"LLMManager: {error_msg}")
            return ChatResponse(content=None, error=error_msg)

        content = response.content if isinstance(response.content, str) else str(response.content)
        usage = dict(getattr(response, "usage_metadata", None) or {})
        logger.info(f"LLMManager: Received response from {self.config.provider.value}. Content length: {len(content)}")
        return ChatResponse(content=content, usage=usage)
