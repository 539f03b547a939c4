from pydantic import AnyUrl, SecretStr
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    LOG_LEVEL: str = "INFO"
    MAX_REQUEST_SIZE: int = 65536
    # Token decryption secret, shared with the token issuer
    TOKEN_PASSPHRASE: SecretStr = SecretStr("")
    # Admission window length (10 minutes)
    ADMISSION_WINDOW_MS: int = 600_000
    # Session store backend: "memory", "redis" or "d1"
    SESSION_STORE: Literal["memory", "redis", "d1"] = "memory"
    REDIS_URL: AnyUrl | None = None
    D1_ACCOUNT_ID: str = ""
    D1_DATABASE_ID: str = ""
    D1_API_TOKEN: SecretStr = SecretStr("")
    D1_TABLE: str = "user"
    # Removal of registered-but-never-entered sessions
    SWEEP_ENABLED: bool = True
    SWEEP_INTERVAL_SECONDS: int = 3600
    # Inbound WebSocket frames allowed per window
    WS_RATE_LIMIT_MESSAGES: int = 60
    WS_RATE_LIMIT_WINDOW: int = 60
    # Authentication for server-to-server endpoints
    API_KEYS: str = ""  # Comma-separated list of API keys
    REQUIRE_AUTH: bool = False
    CORS_ALLOW_ORIGINS: str = "*"  # Comma-separated

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
