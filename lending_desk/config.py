import logging
import os
from dataclasses import dataclass
from typing import Optional
from dotenv import load_dotenv

load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() in ("true", "1", "yes")


@dataclass
class Settings:
    # API settings
    api_host: str = os.getenv("API_HOST", "127.0.0.1")
    api_port: int = int(os.getenv("API_PORT", "5000"))

    # Storage settings
    data_dir: str = os.getenv("LENDING_DATA_DIR", "data")
    seed_defaults: bool = _flag("SEED_DEFAULTS", "True")

    # Sessions (8 hours by default)
    session_ttl_minutes: int = int(os.getenv("SESSION_TTL_MINUTES", "480"))

    # Application settings
    app_name: str = os.getenv("APP_NAME", "Lending Desk")
    app_version: str = os.getenv("APP_VERSION", "1.0.0")
    debug: bool = _flag("DEBUG", "False")
    log_level: str = os.getenv("LOG_LEVEL", "INFO")


settings = Settings()


def configure_logging(level: Optional[str] = None) -> None:
    """Set up root logging once for the API server and the CLI."""
    name = (level or settings.log_level).upper()
    logging.basicConfig(
        level=getattr(logging, name, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )
