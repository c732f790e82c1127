import os
from pathlib import Path

from dotenv import load_dotenv

load_dotenv()


class Config:
    # Base paths
    BASE_DIR = Path(__file__).parent.parent

    # Server
    PORT: int = int(os.getenv("PORT", "3001"))
    FLASK_ENV: str = os.getenv("FLASK_ENV", "development")
    APP_VERSION: str = os.getenv("APP_VERSION", "1.0.0")
    CONTACT_EMAIL: str = os.getenv("CONTACT_EMAIL", "admin@example.com")

    # Logging
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # Slow query logging (only active in development/debug mode)
    SLOW_QUERY_THRESHOLD_MS: int = int(os.getenv("SLOW_QUERY_THRESHOLD_MS", "100"))

    # Historical cache database (one record per rounded location plus the catalog)
    CACHE_DATABASE_PATH: Path = BASE_DIR / os.getenv(
        "CACHE_DATABASE_PATH", "cache/historical.db"
    )

    # Open-Meteo archive API
    ARCHIVE_API_URL: str = os.getenv(
        "ARCHIVE_API_URL", "https://archive-api.open-meteo.com/v1/archive"
    )
    ARCHIVE_API_TIMEOUT: int = int(os.getenv("ARCHIVE_API_TIMEOUT", "30"))  # seconds

    # Open-Meteo forecast and air quality APIs (7-day sunset forecast)
    FORECAST_API_URL: str = os.getenv(
        "FORECAST_API_URL", "https://api.open-meteo.com/v1/forecast"
    )
    AIR_QUALITY_API_URL: str = os.getenv(
        "AIR_QUALITY_API_URL", "https://air-quality-api.open-meteo.com/v1/air-quality"
    )
    FORECAST_API_TIMEOUT: int = int(os.getenv("FORECAST_API_TIMEOUT", "15"))  # seconds
    # Forecasts are held in memory; Open-Meteo refreshes its models every few hours
    FORECAST_CACHE_TTL_SECONDS: int = int(os.getenv("FORECAST_CACHE_TTL_SECONDS", "7200"))

    # Rate limiting (the archive API is rate-limited upstream, so protect it here too)
    RATE_LIMITING_ENABLED: bool = os.getenv("RATE_LIMITING_ENABLED", "true").lower() == "true"
    RATE_LIMIT_STORAGE_URI: str = os.getenv("RATE_LIMIT_STORAGE_URI", "memory://")
    RATE_LIMIT_DEFAULT: str = os.getenv("RATE_LIMIT_DEFAULT", "200 per minute")
    RATE_LIMIT_HISTORICAL: str = os.getenv("RATE_LIMIT_HISTORICAL", "30 per minute")
    RATE_LIMIT_FORECAST: str = os.getenv("RATE_LIMIT_FORECAST", "60 per minute")

    @classmethod
    def is_development(cls) -> bool:
        """Check if running in development mode."""
        return cls.FLASK_ENV == "development"

    @classmethod
    def is_testing(cls) -> bool:
        """Check if running in testing mode."""
        return cls.FLASK_ENV == "testing"

    @classmethod
    def validate(cls) -> list[str]:
        """Validate configuration. Returns list of errors with clear guidance."""
        errors: list[str] = []

        if cls.PORT < 1 or cls.PORT > 65535:
            errors.append(f"PORT must be between 1 and 65535, got {cls.PORT}")

        if cls.ARCHIVE_API_TIMEOUT < 1:
            errors.append(
                f"ARCHIVE_API_TIMEOUT must be at least 1 second, got {cls.ARCHIVE_API_TIMEOUT}"
            )

        if not cls.ARCHIVE_API_URL.startswith(("http://", "https://")):
            errors.append(
                f"ARCHIVE_API_URL must be an http(s) URL, got '{cls.ARCHIVE_API_URL}'"
            )

        for name in ("FORECAST_API_URL", "AIR_QUALITY_API_URL"):
            url = getattr(cls, name)
            if not url.startswith(("http://", "https://")):
                errors.append(f"{name} must be an http(s) URL, got '{url}'")

        if cls.FORECAST_API_TIMEOUT < 1:
            errors.append(
                f"FORECAST_API_TIMEOUT must be at least 1 second, got {cls.FORECAST_API_TIMEOUT}"
            )

        if cls.FORECAST_CACHE_TTL_SECONDS < 0:
            errors.append(
                "FORECAST_CACHE_TTL_SECONDS must not be negative, "
                f"got {cls.FORECAST_CACHE_TTL_SECONDS}"
            )

        if cls.CACHE_DATABASE_PATH.exists() and cls.CACHE_DATABASE_PATH.is_dir():
            errors.append(
                f"CACHE_DATABASE_PATH points to a directory: {cls.CACHE_DATABASE_PATH}. "
                "Set it to a file path such as cache/historical.db"
            )

        # Validate log level
        valid_log_levels = {"DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"}
        if cls.LOG_LEVEL not in valid_log_levels:
            errors.append(
                f"LOG_LEVEL '{cls.LOG_LEVEL}' is not valid. "
                f"Valid levels: {', '.join(sorted(valid_log_levels))}"
            )

        return errors
