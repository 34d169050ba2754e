"""
Application Configuration Module

Centralized configuration for the support chatbot: database, completion
service, authentication, streaming pace, memory policy and server settings.
"""

import os
from typing import Dict, Any, Optional, List
import logging

from dotenv import load_dotenv

logger = logging.getLogger("supportbot.config.app")


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes")


def _env_int(name: str, default: int) -> int:
    try:
        return int(float(os.getenv(name, str(default))))
    except (TypeError, ValueError):
        logger.warning(f"Invalid integer for {name}; using default {default}")
        return default


def _env_float(name: str, default: float) -> float:
    try:
        return float(os.getenv(name, str(default)))
    except (TypeError, ValueError):
        logger.warning(f"Invalid number for {name}; using default {default}")
        return default


class AppConfig:
    """Main application configuration manager."""

    def __init__(self):
        """Initialize configuration with environment variables and defaults."""
        self._load_config()

    def _load_config(self):
        """Load configuration from environment variables with fallbacks."""

        # Database (postgresql:// is rewritten to the asyncpg driver in db/session.py)
        self.database_url = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./supportbot.db")
        self.sql_nullpool = _env_bool("SQL_NULLPOOL", "true")
        self.sql_pool_size = _env_int("SQL_POOL_SIZE", 5)
        self.sql_max_overflow = _env_int("SQL_MAX_OVERFLOW", 10)
        self.sql_pool_timeout = _env_int("SQL_POOL_TIMEOUT", 30)
        self.sql_pool_recycle = _env_int("SQL_POOL_RECYCLE", 1800)
        self.sql_echo = _env_bool("SQL_ECHO", "false")

        # Completion service
        self.ollama_base_url = os.getenv("OLLAMA_BASE_URL", "http://127.0.0.1:11434")
        self.conversational_model = os.getenv("CONVERSATIONAL_MODEL", "llama3:8b")
        # 0 means no client-side timeout
        self.llm_timeout = _env_float("LLM_TIMEOUT", 120.0)
        self.llm_temperature = _env_float("LLM_TEMPERATURE", 0.3)
        self.llm_max_tokens = _env_int("LLM_MAX_TOKENS", 1024)

        # Authentication
        self.jwt_secret = os.getenv("JWT_SECRET", "")
        self.jwt_algorithm = os.getenv("JWT_ALGORITHM", "HS256")
        self.system_api_key = os.getenv("SUPPORTBOT_SYSTEM_API_KEY", "")

        # Streaming pace (milliseconds in env, seconds internally)
        self.stream_word_delay = _env_int("STREAM_WORD_DELAY_MS", 50) / 1000.0
        self.stream_word_jitter = _env_int("STREAM_WORD_JITTER_MS", 30) / 1000.0
        self.stream_paragraph_pause = _env_int("STREAM_PARAGRAPH_PAUSE_MS", 500) / 1000.0
        self.stream_follow_up_delay = _env_int("STREAM_FOLLOW_UP_DELAY_MS", 1000) / 1000.0

        # Context accumulation
        self.context_recent_turns = _env_int("CONTEXT_RECENT_TURNS", 10)
        self.context_memory_limit = _env_int("CONTEXT_MEMORY_LIMIT", 5)

        # Memory gate
        self.memory_min_turns = _env_int("MEMORY_MIN_TURNS", 8)
        self.memory_cooldown_min = _env_float("MEMORY_COOLDOWN_MIN", 10.0)
        self.memory_inactivity_min = _env_float("MEMORY_INACTIVITY_MIN", 15.0)

        # Idle session wrap-up
        self.wrapup_enabled = _env_bool("SESSION_WRAPUP_ENABLED", "true")
        self.wrapup_scan_interval_s = _env_float("SESSION_WRAPUP_SCAN_INTERVAL_S", 120.0)

        # Rate limiting
        self.rate_limit_requests = _env_int("RATE_LIMIT_REQUESTS", 60)
        self.rate_limit_burst = _env_int("RATE_LIMIT_BURST", 10)

        # Server
        self.host = os.getenv("HOST", "127.0.0.1")
        self.port = _env_int("PORT", 8000)
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.log_structured = _env_bool("LOG_STRUCTURED", "true")
        cors_raw = os.getenv("CORS_ORIGINS", "").strip()
        if cors_raw:
            self.cors_origins: List[str] = [o.strip() for o in cors_raw.split(",") if o.strip()]
        else:
            self.cors_origins = ["http://localhost:3000"]

    def get_database_config(self) -> Dict[str, Any]:
        return {
            "url": self.database_url,
            "nullpool": self.sql_nullpool,
            "pool_size": self.sql_pool_size,
            "max_overflow": self.sql_max_overflow,
            "pool_timeout": self.sql_pool_timeout,
            "pool_recycle": self.sql_pool_recycle,
            "echo": self.sql_echo,
        }

    def get_llm_config(self) -> Dict[str, Any]:
        return {
            "base_url": self.ollama_base_url,
            "model": self.conversational_model,
            "timeout": self.llm_timeout if self.llm_timeout > 0 else None,
            "temperature": self.llm_temperature,
            "max_tokens": self.llm_max_tokens,
        }

    def get_streaming_config(self) -> Dict[str, float]:
        return {
            "word_delay": self.stream_word_delay,
            "word_jitter": self.stream_word_jitter,
            "paragraph_pause": self.stream_paragraph_pause,
            "follow_up_delay": self.stream_follow_up_delay,
        }

    def get_memory_config(self) -> Dict[str, Any]:
        return {
            "min_turns": self.memory_min_turns,
            "cooldown_minutes": self.memory_cooldown_min,
            "inactivity_minutes": self.memory_inactivity_min,
        }

    def validate(self) -> List[str]:
        """Return human-readable configuration problems (empty when healthy)."""
        problems = []
        if not self.jwt_secret:
            problems.append("JWT_SECRET is not set; every caller will be treated as anonymous")
        if not self.database_url:
            problems.append("DATABASE_URL is empty")
        return problems


_app_config: Optional[AppConfig] = None


def get_app_config() -> AppConfig:
    """Process-wide configuration, loaded once from the environment and `.env`."""
    global _app_config
    if _app_config is None:
        load_dotenv()
        _app_config = AppConfig()
    return _app_config
