"""Configuration — loads settings from config.toml + secrets from .env."""

from __future__ import annotations

import os
from pathlib import Path

from pydantic import BaseModel

import tomllib
from dotenv import load_dotenv

from hygieia.errors import ConfigError

CONFIG_PATH = Path("config.toml")


class LLMConfig(BaseModel):
    provider: str = "openai"  # "openai", "openrouter" or "zai"
    model: str = "gpt-4o"
    api_key: str = ""
    base_url: str = ""
    reasoning_effort: str = "low"  # openrouter only: "low", "medium", or "high"


class TelegramConfig(BaseModel):
    bot_token: str = ""
    required: bool = True
    max_message_length: int = 4096
    reminder_period_seconds: int = 86_400


class DiscordConfig(BaseModel):
    bot_token: str = ""
    required: bool = False
    max_message_length: int = 2000
    reminder_period_seconds: int = 86_400


class RelayConfig(BaseModel):
    update_interval_ms: int = 500     # min spacing between edits of one message
    show_tool_results: bool = False   # edit immediately when a tool result lands
    max_result_chars: int = 500       # tool result JSON is cut after this


class MemoryConfig(BaseModel):
    db_path: str = "hygieia.db"
    last_messages: int = 10           # recent thread messages in the prompt
    semantic_recall: bool = False
    top_k: int = 5                    # semantic matches per query
    message_range: int = 2            # neighbours included around each match
    embedding_model: str = "text-embedding-3-small"
    embedding_base_url: str = ""


class Config(BaseModel):
    llm: LLMConfig = LLMConfig()
    telegram: TelegramConfig = TelegramConfig()
    discord: DiscordConfig = DiscordConfig()
    relay: RelayConfig = RelayConfig()
    memory: MemoryConfig = MemoryConfig()


# Map of ENV_VAR -> (config section, field)
_ENV_OVERRIDES: dict[str, tuple[str, str]] = {
    "TELEGRAM_BOT_TOKEN": ("telegram", "bot_token"),
    "DISCORD_BOT_TOKEN": ("discord", "bot_token"),
    "OPENAI_API_KEY": ("llm", "openai_api_key"),
    "OPENROUTER_API_KEY": ("llm", "openrouter_api_key"),
    "ZAI_API_KEY": ("llm", "zai_api_key"),
    "ZAI_BASE_URL": ("llm", "base_url"),
}

_PROVIDER_KEYS = {
    "openai": "openai_api_key",
    "openrouter": "openrouter_api_key",
    "zai": "zai_api_key",
}


def load_config(path: Path = CONFIG_PATH) -> Config:
    """Load .env for secrets, then config.toml for everything else.

    Env vars always win for secret fields so you never commit tokens.
    """
    load_dotenv()  # loads .env into os.environ

    # Start with TOML (or defaults)
    if path.exists():
        data = tomllib.loads(path.read_text())
    else:
        data = {}

    # Layer env-var overrides onto the TOML data
    for env_var, (section, field) in _ENV_OVERRIDES.items():
        value = os.getenv(env_var)
        if value:
            data.setdefault(section, {})[field] = value

    # Normalize provider-specific API key aliases to llm.api_key.
    llm_data = data.setdefault("llm", {})
    provider = str(llm_data.get("provider", "openai")).lower()
    key_field = _PROVIDER_KEYS.get(provider)
    if not llm_data.get("api_key") and key_field and llm_data.get(key_field):
        llm_data["api_key"] = llm_data[key_field]

    for key_field in _PROVIDER_KEYS.values():
        llm_data.pop(key_field, None)

    return Config(**data)


def require_tokens(cfg: Config) -> None:
    """Raise ConfigError when a platform marked required has no bot token."""
    missing = []
    if cfg.telegram.required and not cfg.telegram.bot_token:
        missing.append("TELEGRAM_BOT_TOKEN")
    if cfg.discord.required and not cfg.discord.bot_token:
        missing.append("DISCORD_BOT_TOKEN")
    if missing:
        raise ConfigError(f"{', '.join(missing)} is not set in environment variables")
    if not cfg.telegram.bot_token and not cfg.discord.bot_token:
        raise ConfigError("no bot token configured — set TELEGRAM_BOT_TOKEN or DISCORD_BOT_TOKEN")
