import enum
from typing import Optional

from pydantic import Field, computed_field
from pydantic_settings import BaseSettings, SettingsConfigDict


class AIProvider(str, enum.Enum):
    OPENAI = "openai"
    ANTHROPIC = "anthropic"
    GEMINI = "gemini"
    OPENROUTER = "openrouter"
    CUSTOM = "custom"


class TranscriptionProviderKind(str, enum.Enum):
    OPENAI_WHISPER = "openai-whisper"
    GOOGLE_SPEECH = "google-speech"


DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant that generates educational quiz questions from "
    "flashcard content. Generate clear, accurate questions that test "
    "understanding of the material."
)


class OpenAISettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    api_key: Optional[str] = Field(default=None, alias="OPENAI_API_KEY")
    model: str = Field(default="gpt-4", alias="OPENAI_MODEL")
    base_url: str = Field(default="https://api.openai.com/v1", alias="OPENAI_BASE_URL")


class AnthropicSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    api_key: Optional[str] = Field(default=None, alias="ANTHROPIC_API_KEY")
    model: str = Field(default="claude-3-5-sonnet-20241022", alias="ANTHROPIC_MODEL")
    base_url: str = Field(
        default="https://api.anthropic.com/v1", alias="ANTHROPIC_BASE_URL"
    )


class GeminiSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    api_key: Optional[str] = Field(default=None, alias="GEMINI_API_KEY")
    model: str = Field(default="gemini-1.5-flash", alias="GEMINI_MODEL")
    # Some newer models only answer on v1; switch the base URL if v1beta 404s
    base_url: str = Field(
        default="https://generativelanguage.googleapis.com/v1beta",
        alias="GEMINI_BASE_URL",
    )


class OpenRouterSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    api_key: Optional[str] = Field(default=None, alias="OPENROUTER_API_KEY")
    model: str = Field(default="openai/gpt-4o-mini", alias="OPENROUTER_MODEL")
    base_url: str = Field(
        default="https://openrouter.ai/api/v1", alias="OPENROUTER_BASE_URL"
    )
    app_name: str = Field(default="flashquiz", alias="OPENROUTER_APP_NAME")


class CustomLLMSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    api_key: Optional[str] = Field(default=None, alias="CUSTOM_LLM_API_KEY")
    model: str = Field(default="", alias="CUSTOM_LLM_MODEL")
    base_url: Optional[str] = Field(default=None, alias="CUSTOM_LLM_BASE_URL")
    endpoint: str = Field(default="/chat/completions", alias="CUSTOM_LLM_ENDPOINT")
    headers: dict[str, str] = Field(default_factory=dict, alias="CUSTOM_LLM_HEADERS")


class VoiceAISettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    enabled: bool = Field(default=False, alias="VOICE_AI_ENABLED")
    provider: TranscriptionProviderKind = Field(
        default=TranscriptionProviderKind.OPENAI_WHISPER, alias="VOICE_AI_PROVIDER"
    )
    cache_transcriptions: bool = Field(default=True, alias="VOICE_AI_CACHE")

    whisper_api_key: Optional[str] = Field(default=None, alias="WHISPER_API_KEY")
    whisper_model: str = Field(default="whisper-1", alias="WHISPER_MODEL")
    whisper_base_url: str = Field(
        default="https://api.openai.com/v1", alias="WHISPER_BASE_URL"
    )

    google_speech_api_key: Optional[str] = Field(
        default=None, alias="GOOGLE_SPEECH_API_KEY"
    )
    google_speech_language: str = Field(
        default="en-US", alias="GOOGLE_SPEECH_LANGUAGE"
    )

    # OpenAI rejects uploads above 25MB
    max_file_size: int = Field(default=25 * 1024 * 1024, alias="VOICE_AI_MAX_FILE_SIZE")


class AIQuizSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    enabled: bool = Field(default=True, alias="AI_QUIZ_ENABLED")
    provider: AIProvider = Field(default=AIProvider.OPENAI, alias="AI_PROVIDER")
    temperature: float = Field(default=0.7, alias="AI_TEMPERATURE")
    max_tokens: int = Field(default=4000, alias="AI_MAX_TOKENS")
    system_prompt: Optional[str] = Field(
        default=DEFAULT_SYSTEM_PROMPT, alias="AI_SYSTEM_PROMPT"
    )
    http_timeout: Optional[float] = Field(default=120.0, alias="AI_HTTP_TIMEOUT")

    openai: OpenAISettings = Field(default_factory=lambda: OpenAISettings())
    anthropic: AnthropicSettings = Field(default_factory=lambda: AnthropicSettings())
    gemini: GeminiSettings = Field(default_factory=lambda: GeminiSettings())
    openrouter: OpenRouterSettings = Field(
        default_factory=lambda: OpenRouterSettings()
    )
    custom: CustomLLMSettings = Field(default_factory=lambda: CustomLLMSettings())
    voice_ai: VoiceAISettings = Field(default_factory=lambda: VoiceAISettings())

    @computed_field
    def effective_system_prompt(self) -> str:
        return self.system_prompt or DEFAULT_SYSTEM_PROMPT


class VaultSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        populate_by_name=True,
    )
    root: str = Field(default=".", alias="VAULT_ROOT")
    transcription_cache_path: str = Field(
        default=".obsidian/plugins/flashly/transcriptions.json",
        alias="TRANSCRIPTION_CACHE_PATH",
    )


class AppSettings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )
    name: str = Field(default="flashquiz", alias="APP_NAME")
    version: str = Field(default="v1", alias="API_VERSION")
    port: int = Field(default=9000, alias="APP_PORT")
    mode: str = Field(default="prod", alias="MODE")

    @computed_field
    def is_production(self) -> bool:
        return self.mode != "dev"


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
    )

    app: AppSettings = Field(default_factory=lambda: AppSettings())
    quiz: AIQuizSettings = Field(default_factory=lambda: AIQuizSettings())
    vault: VaultSettings = Field(default_factory=lambda: VaultSettings())


settings = Settings()
