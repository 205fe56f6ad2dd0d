"""
Configuration settings for the Nx documentation assistant.

This module handles all configuration management using environment variables.
Credentials and tuning knobs come from the environment (or a .env file).
"""

import os
from dataclasses import dataclass, field
from typing import Optional
from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _env_flag(name: str, default: bool) -> bool:
    value = os.getenv(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class OpenAIConfig:
    """Configuration for the OpenAI moderation, embedding and chat endpoints."""

    api_key: Optional[str] = None
    embedding_model: str = "text-embedding-ada-002"
    chat_model: str = "gpt-3.5-turbo-16k"
    temperature: float = 0.0


@dataclass
class SupabaseConfig:
    """Configuration for the Supabase page-section store."""

    url: Optional[str] = None
    service_role_key: Optional[str] = None
    match_function: str = "match_page_sections_2"


@dataclass
class RetrievalConfig:
    """Configuration for retrieval and context assembly."""

    match_threshold: float = 0.78  # Minimum cosine similarity
    match_count: int = 15  # Max sections returned by the stored procedure
    min_content_length: int = 50  # Characters
    max_context_tokens: int = 2500
    tokenizer_encoding: str = "r50k_base"  # GPT-3 family BPE

    # Embed "query + previous answer" instead of the bare query.
    # Costs more tokens, may or may not improve retrieval.
    embed_prior_answer: bool = True


@dataclass
class ChatConfig:
    """Configuration for conversation handling."""

    max_history_length: int = 30  # Messages, not turns
    docs_base_url: str = "https://nx.dev"
    session_idle_hours: float = 24.0  # Idle sessions are dropped after this


@dataclass
class Settings:
    """
    Main settings class that aggregates all configurations.

    Usage:
        settings = get_settings()
        print(settings.openai.chat_model)
        print(settings.retrieval.match_threshold)
    """

    openai: OpenAIConfig = field(default_factory=OpenAIConfig)
    supabase: SupabaseConfig = field(default_factory=SupabaseConfig)
    retrieval: RetrievalConfig = field(default_factory=RetrievalConfig)
    chat: ChatConfig = field(default_factory=ChatConfig)

    # Logging
    log_level: str = "INFO"

    @classmethod
    def from_env(cls) -> "Settings":
        """
        Create Settings instance from environment variables.

        This is the primary way to instantiate Settings.
        """
        openai = OpenAIConfig(
            api_key=os.getenv("NX_OPENAI_KEY"),
            embedding_model=os.getenv("NX_EMBEDDING_MODEL", "text-embedding-ada-002"),
            chat_model=os.getenv("NX_CHAT_MODEL", "gpt-3.5-turbo-16k"),
            temperature=float(os.getenv("NX_CHAT_TEMPERATURE", "0")),
        )

        supabase = SupabaseConfig(
            url=os.getenv("NX_NEXT_PUBLIC_SUPABASE_URL"),
            service_role_key=os.getenv("NX_SUPABASE_SERVICE_ROLE_KEY"),
            match_function=os.getenv("NX_MATCH_FUNCTION", "match_page_sections_2"),
        )

        retrieval = RetrievalConfig(
            match_threshold=float(os.getenv("NX_MATCH_THRESHOLD", "0.78")),
            match_count=int(os.getenv("NX_MATCH_COUNT", "15")),
            min_content_length=int(os.getenv("NX_MIN_CONTENT_LENGTH", "50")),
            max_context_tokens=int(os.getenv("NX_MAX_CONTEXT_TOKENS", "2500")),
            tokenizer_encoding=os.getenv("NX_TOKENIZER_ENCODING", "r50k_base"),
            embed_prior_answer=_env_flag("NX_EMBED_PRIOR_ANSWER", True),
        )

        chat = ChatConfig(
            max_history_length=int(os.getenv("NX_MAX_HISTORY_LENGTH", "30")),
            docs_base_url=os.getenv("NX_DOCS_BASE_URL", "https://nx.dev"),
            session_idle_hours=float(os.getenv("NX_SESSION_IDLE_HOURS", "24")),
        )

        return cls(
            openai=openai,
            supabase=supabase,
            retrieval=retrieval,
            chat=chat,
            log_level=os.getenv("LOG_LEVEL", "INFO"),
        )


# Singleton pattern for settings
_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """
    Get the singleton Settings instance.

    Returns:
        Settings: The application settings loaded from environment.
    """
    global _settings
    if _settings is None:
        _settings = Settings.from_env()
    return _settings


def reload_settings() -> Settings:
    """
    Reload settings from environment (useful for testing).

    Returns:
        Settings: Fresh settings instance.
    """
    global _settings
    load_dotenv(override=True)
    _settings = Settings.from_env()
    return _settings
