from typing import List, Optional

from pydantic_settings import BaseSettings, SettingsConfigDict


# ================== SETTINGS ==================
class Settings(BaseSettings):
    DATABASE_URL: str = "sqlite:///./royal_quads.db"
    ADMIN_PIN: str = "1234"
    SEED_QUADS: int = 5
    CORS_ORIGINS: List[str] = ["*"]

    MAIL_USERNAME: Optional[str] = None
    MAIL_PASSWORD: Optional[str] = None
    MAIL_FROM: Optional[str] = None
    MAIL_SERVER: str = "smtp.gmail.com"
    MAIL_PORT: int = 587
    ADMIN_EMAIL: Optional[str] = None

    TWILIO_SID: Optional[str] = None
    TWILIO_AUTH_TOKEN: Optional[str] = None
    TWILIO_WHATSAPP_FROM: Optional[str] = None

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="allow"
    )


settings = Settings()

# ================== BUSINESS CONSTANTS ==================
OVERTIME_RATE = 100  # KES per minute
DEFAULT_ADMIN_PIN = "1234"
ADMIN_PIN_KEY = "admin_pin"
RECEIPT_PREFIX = "RQ-"
MIN_PASSWORD_LENGTH = 4

QUAD_STATUSES = ("available", "rented", "maintenance")

# Local (Kenyan) mobile numbers: 07xx/01xx, optionally with 254 / +254 prefix.
PHONE_PATTERN = r"^(?:\+254|254|0)[17]\d{8}$"

# ================== PRICING ==================
PRICING = [
    {"duration": 5, "price": 1000, "label": "5 min"},
    {"duration": 10, "price": 1800, "label": "10 min"},
    {"duration": 15, "price": 2200, "label": "15 min"},
    {"duration": 20, "price": 2500, "label": "20 min"},
    {"duration": 30, "price": 3500, "label": "30 min"},
    {"duration": 60, "price": 6000, "label": "1 hour"},
]
