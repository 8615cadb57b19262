from pydantic_settings import BaseSettings
from typing import List, Optional
import os

from .errors import ConfigurationInvalid

DEFAULT_THRESHOLD = 70


class Settings(BaseSettings):
    # oracle (OpenAI-compatible chat completions; Groq by default)
    ORACLE_API_KEY: Optional[str] = None
    ORACLE_URL: str = "https://api.groq.com/openai/v1/chat/completions"
    ORACLE_MODEL: str = "llama3-70b-8192"
    ORACLE_TIMEOUT: float = 30.0
    ORACLE_TEMPERATURE: float = 0.3
    ORACLE_MAX_TOKENS: int = 512

    # ledger gateway; in-memory ledger when LEDGER_RPC_URL is unset
    LEDGER_RPC_URL: Optional[str] = None
    LEDGER_SIGNING_KEY: Optional[str] = None
    LEDGER_SIGNER_ADDRESS: Optional[str] = None
    HASH_REGISTRY_ADDRESS: Optional[str] = None
    SOURCE_REGISTRY_ADDRESS: Optional[str] = None
    LEDGER_TIMEOUT: float = 30.0

    ANCHOR_THRESHOLD: int = DEFAULT_THRESHOLD
    ALLOWED_ORIGINS: str = "http://localhost:3000"
    LOG_LEVEL: str = "INFO"

    @property
    def origins(self) -> List[str]:
        return [o.strip() for o in self.ALLOWED_ORIGINS.split(",") if o.strip()]

    @property
    def oracle_configured(self) -> bool:
        return bool(self.ORACLE_API_KEY)

    def require(self, *names: str) -> None:
        """Raise ConfigurationInvalid naming every unset field in `names`."""
        missing = [n for n in names if not getattr(self, n, None)]
        if missing:
            raise ConfigurationInvalid(f"missing required configuration: {', '.join(missing)}")


def validate_threshold(value) -> int:
    # bool is an int subclass; reject it explicitly
    if isinstance(value, bool) or not isinstance(value, int):
        raise ConfigurationInvalid("threshold must be an integer between 0 and 100")
    if value < 0 or value > 100:
        raise ConfigurationInvalid(f"threshold must be between 0 and 100, got {value}")
    return value


class ThresholdStore:
    """
    Process-wide anchoring threshold.

    The only shared mutable value of the pipeline: written by the
    configuration endpoint, read by every anchoring decision at call time.
    It lives in memory and resets on restart.
    """

    def __init__(self, initial: int = DEFAULT_THRESHOLD):
        self._value = validate_threshold(initial)

    def get(self) -> int:
        return self._value

    def set(self, value) -> int:
        self._value = validate_threshold(value)
        return self._value


settings = Settings(_env_file=os.getenv("ENV_FILE", ".env"), _env_file_encoding="utf-8")
