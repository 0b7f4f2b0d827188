from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    bot_token: str = Field(default="", alias="BOT_TOKEN")
    database_url: str = Field(
        default="sqlite+aiosqlite:///./app.db", alias="BOT_DATABASE_URL"
    )
    log_level: str = Field(default="INFO", alias="BOT_LOG_LEVEL")
    timezone: str = Field(default="Asia/Tashkent", alias="BOT_TIMEZONE")

    # FSM-хранилище диалогов: Redis с коротким TTL, без него MemoryStorage
    redis_url: str | None = Field(default=None, alias="BOT_REDIS_URL")
    fsm_state_ttl_sec: int = Field(default=3600, alias="BOT_FSM_STATE_TTL_SEC")

    fixed_service_price: float = Field(default=50000, alias="FIXED_SERVICE_PRICE")
    booking_horizon_days: int = Field(default=30, alias="BOOKING_HORIZON_DAYS")
    default_doctor_name: str | None = Field(default=None, alias="DEFAULT_DOCTOR_NAME")
    admin_tg_ids: list[int] = Field(default_factory=list, alias="ADMIN_TG_IDS")

    model_config = SettingsConfigDict(env_file=".env", env_prefix="", extra="ignore")
