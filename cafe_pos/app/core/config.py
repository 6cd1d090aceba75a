from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="ignore")

    # Local store for the persisted drawer record
    DATABASE_URL: str = "sqlite:///./cafe_pos.db"

    # External café backend (product read, add-on read, sale create)
    BACKEND_BASE_URL: str = "http://localhost/habibbi-backend"
    BACKEND_TIMEOUT_SECONDS: float = 10.0

    # One process hosts one register
    REGISTER_ID: str = "caja-1"

    # Business days roll over at local midnight in this zone
    TIMEZONE: str = "America/Santiago"

    # Remaining stock at or below this value raises the low-stock signal
    LOW_STOCK_THRESHOLD: int = 5

    # Categories sold in S / M / L sizes
    SIZE_ELIGIBLE_CATEGORIES: list[str] = ["Bebidas Calientes", "Bebidas Frías"]

    CORS_ORIGINS: list[str] = ["http://localhost:3000"]


settings = Settings()
