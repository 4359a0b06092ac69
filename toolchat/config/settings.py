"""
toolchat configuration.

Every value can come from the environment or a .env file. Nested groups use a
double underscore, e.g. LLM__MODEL, CHAT__MAX_ROUNDS, STORE__BACKEND.
"""

from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


DEFAULT_SYSTEM_PROMPT = """You are a helpful Kubernetes assistant inside a cluster dashboard. \
You have access to the cluster via tools. You are helping users manage their clusters and debug issues.

**HANDLING MISSING PARAMETERS & AMBIGUITY:**
1. For troubleshooting questions ("website is down", "503 error"), investigate on your own first: \
list high-level resources such as ingresses or services, then drill down (Ingress -> Service -> Pod). \
Only ask for clarification if the results are ambiguous.
2. For an action on an unspecified resource ("describe pod", "show logs"), list the available \
resources and ASK the user to pick one.

**MULTI-STEP PLANNING:**
Wrap your high-level plan in <plan> tags, explain the next step in <thought> tags, \
then execute tools sequentially.

**SAFETY:**
You MUST ask for user confirmation before executing any state-changing tool \
(scaling, deleting, patching). Do NOT auto-run destructive commands.

Use markdown for your final response."""


class LLMSettings(BaseSettings):
    """Model gateway (LiteLLM) and per-request model override policy."""

    model: str = Field(
        default="openai/gpt-4o-mini",
        description="LiteLLM model string, e.g. 'openai/gpt-4o', "
                    "'anthropic/claude-3-5-sonnet-20241022', 'ollama/llama3'. The provider "
                    "prefix tells LiteLLM which API to route the request to.",
    )
    max_tokens: int = Field(default=2048, description="Maximum tokens in response")
    temperature: float = Field(default=0.2, description="Sampling temperature")
    api_key: str = Field(default="", description="API key for the model's provider")
    api_base: str | None = Field(
        default=None,
        description="Optional base URL for OpenAI-compatible or self-hosted endpoints",
    )
    allow_model_override: bool = Field(
        default=True,
        description="Whether a chat request may pick its own model",
    )
    allowed_models: list[str] = Field(
        default_factory=list,
        description="If non-empty, per-request model overrides must be one of these. "
                    "Set via LLM__ALLOWED_MODELS='[\"openai/gpt-4o\"]'",
    )

    model_config = SettingsConfigDict(env_prefix="LLM_")


class ChatSettings(BaseSettings):
    """Turn loop and session behaviour."""

    max_rounds: int = Field(
        default=50,
        gt=0,
        description="Maximum provider rounds per request before the loop stops",
    )
    title_placeholder: str = Field(
        default="New Chat", description="Title given to freshly created sessions"
    )
    generate_titles: bool = Field(
        default=True,
        description="Derive a short session title from the first message in the background",
    )
    title_max_length: int = Field(default=80, gt=0, description="Generated titles are cut to this")
    event_buffer_size: int = Field(
        default=1,
        gt=0,
        description="Bounded event queue size; a slow consumer blocks the turn loop",
    )
    system_prompt: str = Field(
        default=DEFAULT_SYSTEM_PROMPT, description="System prompt sent ahead of the history"
    )

    model_config = SettingsConfigDict(env_prefix="CHAT_")


class StoreSettings(BaseSettings):
    """Conversation store configuration."""

    backend: Literal["memory", "jsonl"] = Field(
        default="jsonl", description="Where transcripts are persisted"
    )
    path: str = Field(
        default="data/sessions",
        description="Directory for the jsonl backend (one metadata + one transcript file per session)",
    )

    model_config = SettingsConfigDict(env_prefix="STORE_")


class ToolSettings(BaseSettings):
    """Tools contributed by an external MCP server."""

    mcp_server_command: str | None = Field(
        default=None,
        description="Executable for an MCP stdio tool server (e.g. 'node'). "
                    "If set, its tools are offered to the model on every request.",
    )
    mcp_server_args: list[str] = Field(
        default_factory=list,
        description="Arguments for the MCP server command, e.g. '[\"server/index.js\"]'",
    )

    model_config = SettingsConfigDict(env_prefix="TOOL_")


class Settings(BaseSettings):
    """Root configuration: environment, logging and the per-concern groups."""

    # Environment
    environment: Literal["development", "production"] = Field(
        default="development", description="Deployment environment"
    )

    # Logging
    log_level: Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"] = Field(
        default="INFO", description="Logging level"
    )
    log_file: Path | None = Field(default=None, description="Log file path")

    # Sub-configurations
    llm: LLMSettings = Field(default_factory=LLMSettings)
    chat: ChatSettings = Field(default_factory=ChatSettings)
    store: StoreSettings = Field(default_factory=StoreSettings)
    tools: ToolSettings = Field(default_factory=ToolSettings)

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )


# Process-wide instance, created on first use
_settings: Settings | None = None


def get_settings() -> Settings:
    """Return the process-wide settings, loading them on first call."""
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def load_settings(env_file: str | Path | None = None) -> Settings:
    """
    Load settings from file and environment.

    Args:
        env_file: Path to .env file (optional)

    Returns:
        Loaded settings instance
    """
    global _settings
    if env_file:
        _settings = Settings(_env_file=env_file)
    else:
        _settings = Settings()
    return _settings
