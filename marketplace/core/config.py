from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    ENV: str = "dev"
    LOG_LEVEL: str = "INFO"
    HOST: str = "127.0.0.1"
    PORT: int = 8001

    STORE_PROVIDER: str = "memory"  # "memory" | "json"
    DATA_DIR: str = "./data/store"

    STRIPE_SECRET_KEY: str | None = None
    STRIPE_API_BASE: str = "https://api.stripe.com/v1"
    DEFAULT_CURRENCY: str = "usd"

    ZOOM_ACCESS_TOKEN: str | None = None
    ZOOM_USER_ID: str = "me"
    ZOOM_API_BASE: str = "https://api.zoom.us/v2"

    NOTIFY_ENDPOINT: str | None = None
    NOTIFY_API_KEY: str | None = None
    NOTIFY_FROM_ADDRESS: str = "bookings@example.com"

    EXTERNAL_TIMEOUT_SECONDS: float = 10.0
    PAYMENT_DEDUPE_WINDOW_MINUTES: int = 10
    SLOT_HORIZON_DAYS: int = 90
    RECURRING_HORIZON_WEEKS: int = 12

    DEFAULT_PLATFORM_COMMISSION: float = 15.0
    DEFAULT_COURSE_COMMISSION: float = 15.0
    DEFAULT_CONSULTING_COMMISSION: float = 20.0
    DEFAULT_WEBINAR_COMMISSION: float = 15.0


settings = Settings()
