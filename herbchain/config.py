# herbchain/config.py
"""
Configuration read from environment variables with development defaults.
"""

import os


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).lower() in ("1", "true", "yes")


class Config:
    """Application configuration."""

    # =========================
    # ENVIRONMENT
    # =========================
    ENVIRONMENT = os.getenv("ENVIRONMENT", "development")
    BASE_URL = os.getenv("BASE_URL", "http://localhost:8000")
    ALLOWED_ORIGINS = os.getenv("ALLOWED_ORIGINS", "*").split(",")

    # =========================
    # STORAGE
    # =========================
    # Unset MONGO_URI keeps everything in process memory.
    MONGO_URI = os.getenv("MONGO_URI")
    MONGO_DB = os.getenv("MONGO_DB", "herbchain_db")
    STORAGE_RETRY_ATTEMPTS = int(os.getenv("STORAGE_RETRY_ATTEMPTS", "3"))
    CONFLICT_RETRY_ATTEMPTS = int(os.getenv("CONFLICT_RETRY_ATTEMPTS", "5"))

    # =========================
    # AUTH
    # =========================
    JWT_SECRET = os.getenv("JWT_SECRET", "dev-secret")
    JWT_ALGORITHM = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRE_MINUTES = int(os.getenv("JWT_EXPIRE_MINUTES", "1440"))
    ADMIN_EMAIL = os.getenv("ADMIN_EMAIL", "admin@herbchain.com")
    ADMIN_PASSWORD = os.getenv("ADMIN_PASSWORD", "change_me")

    # =========================
    # LEDGER & PRODUCT CODES
    # =========================
    LEDGER_SIGNING_KEY = os.getenv("LEDGER_SIGNING_KEY", "dev-ledger-key")
    PRODUCT_CODE_SECRET = os.getenv("PRODUCT_CODE_SECRET", "dev-product-code-key")
    PRODUCT_CODE_ALGORITHM = os.getenv("PRODUCT_CODE_ALGORITHM", "HS256")

    # =========================
    # CONSERVATION
    # =========================
    # Harvest seasons run from this month to the month before it next year.
    SEASON_START_MONTH = int(os.getenv("SEASON_START_MONTH", "6"))

    # =========================
    # PROVENANCE
    # =========================
    SHELF_LIFE_DAYS = int(os.getenv("SHELF_LIFE_DAYS", "730"))
    DEFAULT_MANUFACTURER_ID = os.getenv("DEFAULT_MANUFACTURER_ID", "manufacturer-1")
    DEFAULT_PRODUCT_NAME = os.getenv("DEFAULT_PRODUCT_NAME", "Premium Ashwagandha Root Powder")
    PROCESSING_FACILITY = (
        float(os.getenv("PROCESSING_FACILITY_LAT", "26.5")),
        float(os.getenv("PROCESSING_FACILITY_LNG", "74.5")),
    )
    LAB_FACILITY = (
        float(os.getenv("LAB_FACILITY_LAT", "28.6")),
        float(os.getenv("LAB_FACILITY_LNG", "77.2")),
    )

    # =========================
    # LOGGING
    # =========================
    LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
    LOG_JSON = _env_bool("LOG_JSON", "true" if ENVIRONMENT == "production" else "false")

    @classmethod
    def validate(cls):
        """Refuse to start in production with development secrets."""
        if cls.ENVIRONMENT != "production":
            return
        defaults = {
            "JWT_SECRET": "dev-secret",
            "LEDGER_SIGNING_KEY": "dev-ledger-key",
            "PRODUCT_CODE_SECRET": "dev-product-code-key",
            "ADMIN_PASSWORD": "change_me",
        }
        for name, dev_value in defaults.items():
            if getattr(cls, name) == dev_value:
                raise ValueError(f"{name} must be set in production")


def get_config() -> type[Config]:
    """Get validated configuration."""
    Config.validate()
    return Config
