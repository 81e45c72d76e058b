import logging
import os
from functools import lru_cache
from typing import Optional

from dotenv import load_dotenv

load_dotenv()


class Settings:
    """Application settings loaded from environment variables."""

    def __init__(self):
        self.app_env: str = os.getenv("APP_ENV", "development")
        self.host: str = os.getenv("HOST", "0.0.0.0")
        self.port: int = int(os.getenv("PORT", "8000"))
        self.log_level: str = os.getenv("LOG_LEVEL", "INFO").upper()

        # ── Analytics API ─────────────────────────────────────────────
        self.bitscrunch_api_key: Optional[str] = os.getenv("BITSCRUNCH_API_KEY")
        self.bitscrunch_base_url: str = os.getenv(
            "BITSCRUNCH_BASE_URL", "https://api.unleashnfts.com/api/v2"
        ).rstrip("/")
        self.bitscrunch_max_retries: int = int(os.getenv("BITSCRUNCH_MAX_RETRIES", "3"))
        self.bitscrunch_retry_base_delay: float = float(
            os.getenv("BITSCRUNCH_RETRY_BASE_DELAY", "1.0")
        )
        self.bitscrunch_timeout: float = float(os.getenv("BITSCRUNCH_TIMEOUT", "30"))
        self.default_blockchain: str = os.getenv("DEFAULT_BLOCKCHAIN", "ethereum")

        # ── LLM ───────────────────────────────────────────────────────
        self.ai_provider: str = os.getenv("AI_PROVIDER", "gemini").lower()
        self.llm_temperature: float = float(os.getenv("LLM_TEMPERATURE", "0.7"))
        self.max_tool_rounds: int = int(os.getenv("MAX_TOOL_ROUNDS", "3"))


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()


_LOG_FORMAT = "%(asctime)s %(levelname)-7s %(name)s: %(message)s"


def setup_logging(level: str = "INFO") -> None:
    """Configure root logging once; later calls only adjust the level."""
    root = logging.getLogger()
    if not root.handlers:
        logging.basicConfig(level=level, format=_LOG_FORMAT)
    root.setLevel(level)
    # httpx logs every request line at INFO, including query strings
    logging.getLogger("httpx").setLevel(logging.WARNING)
