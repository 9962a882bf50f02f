# telem/config.py
# Environment-aware configuration for the Telem advisor API

import os
from decimal import Decimal
from typing import Literal

from dotenv import load_dotenv

# Load environment variables from .env file
load_dotenv()


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


# Environment detection
ENV: Literal["dev", "staging", "prod"] = os.getenv("ENV", "dev")  # type: ignore
IS_DEV = (ENV == "dev")
IS_PROD = (ENV == "prod")

# Database configuration
DATABASE_URL = os.getenv("DATABASE_URL", "sqlite:///telem.db")
SQL_ECHO = _flag("SQL_ECHO", "false")

# Alembic owns the schema in production; dev and tests may create tables directly
CREATE_TABLES_ON_STARTUP = _flag("CREATE_TABLES_ON_STARTUP", "true")

# JWT configuration
SECRET_KEY = os.getenv("SECRET_KEY", "telem-dev-secret-key")
ALGORITHM = "HS256"
ACCESS_TOKEN_MINUTES = int(os.getenv("ACCESS_TOKEN_MINUTES", "720"))

# Calculator defaults, used when neither the request nor the settings table provides a value
DEFAULT_EXCHANGE_RATE = Decimal(os.getenv("DEFAULT_EXCHANGE_RATE", "3.95"))
DEFAULT_VAT_RATE = Decimal(os.getenv("DEFAULT_VAT_RATE", "19"))
CALCULATOR_COPY_SUFFIX = os.getenv("CALCULATOR_COPY_SUFFIX", " (copy)")

if IS_PROD and SECRET_KEY == "telem-dev-secret-key":
    raise RuntimeError("SECRET_KEY must be set in production")

# Logging
APP_LOG_LEVEL = os.getenv("APP_LOG_LEVEL", "DEBUG" if IS_DEV else "INFO")
THIRD_PARTY_LOG_LEVEL = os.getenv("THIRD_PARTY_LOG_LEVEL", "WARNING")
LOG_FILE = os.getenv("LOG_FILE")
LOG_MAX_BYTES = int(os.getenv("LOG_MAX_BYTES", str(10 * 1024 * 1024)))
LOG_BACKUP_COUNT = int(os.getenv("LOG_BACKUP_COUNT", "5"))
