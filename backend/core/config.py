# backend/core/config.py
import os
from typing import List, Literal, Optional
from dotenv import load_dotenv

PRODUCTION_ORIGINS = "https://largefiletransfer.org,https://www.largefiletransfer.org"
DEVELOPMENT_ORIGINS = "http://localhost:3000,http://127.0.0.1:3000"


class Settings:
    """
    Setup environment variables.
        - APP_ENV "production" or "development", selects default CORS origins
        - RATE_LIMIT_WINDOW_SECONDS / MAX_CONNECTIONS_PER_IP admission quota
        - ROOM_TIMEOUT_SECONDS age after which an empty room is swept
        - TURN_SERVER_* credentials handed out by /api/turn-config

    Any attribute can be overridden per instance, e.g. Settings(MAX_CONNECTIONS_PER_IP=2).
    """

    # Load environment variables from the .env file
    load_dotenv()

    APP_ENV: Literal["production", "development"] = os.getenv("APP_ENV", "development")

    HOST: str = os.getenv("HOST", "0.0.0.0")
    PORT: int = int(os.getenv("PORT", "3000"))

    # Explicit comma-separated list; when unset, derived from APP_ENV per instance
    CORS_ORIGINS: Optional[List[str]] = (
        [origin.strip() for origin in os.environ["CORS_ORIGINS"].split(",") if origin.strip()]
        if os.getenv("CORS_ORIGINS")
        else None
    )

    # Admission control
    RATE_LIMIT_WINDOW_SECONDS: float = float(os.getenv("RATE_LIMIT_WINDOW_SECONDS", "60"))
    MAX_CONNECTIONS_PER_IP: int = int(os.getenv("MAX_CONNECTIONS_PER_IP", "10"))
    RATE_LIMIT_SWEEP_SECONDS: float = float(os.getenv("RATE_LIMIT_SWEEP_SECONDS", "60"))

    # Room expiry
    ROOM_TIMEOUT_SECONDS: float = float(os.getenv("ROOM_TIMEOUT_SECONDS", "600"))
    ROOM_SWEEP_SECONDS: float = float(os.getenv("ROOM_SWEEP_SECONDS", "600"))

    MAX_FILE_SIZE_BYTES: int = int(os.getenv("MAX_FILE_SIZE_BYTES", str(10 * 1024 * 1024 * 1024)))

    TURN_SERVER_URL: Optional[str] = os.getenv("TURN_SERVER_URL")
    TURN_SERVER_USERNAME: Optional[str] = os.getenv("TURN_SERVER_USERNAME")
    TURN_SERVER_PASSWORD: Optional[str] = os.getenv("TURN_SERVER_PASSWORD")
    TURN_SERVER_TLS_URL: Optional[str] = os.getenv("TURN_SERVER_TLS_URL")

    def __init__(self, **overrides) -> None:
        for key, value in overrides.items():
            if not hasattr(type(self), key):
                raise AttributeError(f"Unknown setting: {key}")
            setattr(self, key, value)

        if self.CORS_ORIGINS is None:
            origins = PRODUCTION_ORIGINS if self.APP_ENV == "production" else DEVELOPMENT_ORIGINS
            self.CORS_ORIGINS = origins.split(",")

settings = Settings()
