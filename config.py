import os

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    DATABASE_URL: str = os.getenv("DATABASE_URL", "mongodb://localhost:27017")
    DATABASE_NAME: str = os.getenv("DATABASE_NAME", "kstore")
    JWT_SECRET: str = os.getenv("JWT_SECRET", "change-me")

    # Checkout pricing
    TAX_RATE: float = 0.05
    FREE_SHIPPING_THRESHOLD: float = 500
    SHIPPING_FEE: float = 50

    DELIVERY_DAYS: int = 3
    RETURN_WINDOW_DAYS: int = 7

    LOG_LEVEL: str = "INFO"
    PORT: int = 8000


settings = Settings()
