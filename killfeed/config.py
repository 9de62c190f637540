from pydantic import AnyUrl
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache
from typing import Literal

class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    SERVICE_PORT: int = 8080
    LOG_JSON: bool = True
    # Remote long-poll endpoint (RedisQ)
    REDISQ_URL: str = "https://zkillredisq.stream/listen.php"
    REDISQ_TTW: int = 10  # server-side wait hint, seconds
    REDISQ_TIMEOUT_MARGIN: float = 5.0  # added to TTW for the client timeout
    RETRY_COOLDOWN_SECONDS: float = 1.0
    # Retention
    BASE_RETENTION_MS: int = 45_000
    SWEEP_INTERVAL_SECONDS: float = 5.0
    SCALE_MIN: float = 0.5
    KILL_URL_TEMPLATE: str = "https://zkillboard.com/kill/{id}/"
    # Queue identity persistence: "memory" or "redis"
    IDENTITY_BACKEND: Literal["memory", "redis"] = "memory"
    REDIS_URL: AnyUrl | None = None
    QUEUE_ID_PREFIX: str = "zkbmap-"
    # Liveness
    HEARTBEAT_STALE_SECONDS: float = 60.0
    FEED_AUTOSTART: bool = True

@lru_cache(maxsize=1)
def get_settings() -> Settings:
    return Settings()
