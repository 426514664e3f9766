import os
from dotenv import load_dotenv
from loguru import logger

load_dotenv()

def _get_env(key: str, default: str | None = None) -> str:
    val = os.getenv(key, default)
    if val is None:
        raise RuntimeError(f"Missing required env var: {key}")
    return val

APP_ENV = _get_env("APP_ENV", "local")
DATABASE_URL = _get_env("DATABASE_URL", "sqlite:///./caddate.db")
LOG_LEVEL = _get_env("LOG_LEVEL", "DEBUG")
LOG_FILE = _get_env("LOG_FILE", "logs/app.log")

JWT_SECRET = _get_env("JWT_SECRET", "change-me-in-production")
JWT_ALGORITHM = _get_env("JWT_ALGORITHM", "HS256")
JWT_EXPIRE_MINUTES = int(_get_env("JWT_EXPIRE_MINUTES", str(60 * 24 * 7)))

AUTH_DEBUG = _get_env("AUTH_DEBUG", "false").lower() in ("1", "true", "yes")

CORS_ORIGINS = [o.strip() for o in _get_env("CORS_ORIGINS", "*").split(",") if o.strip()]

logger.debug(f"Config loaded: APP_ENV={APP_ENV}, DATABASE_URL={DATABASE_URL}, LOG_LEVEL={LOG_LEVEL}")
