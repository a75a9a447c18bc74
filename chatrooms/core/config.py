# chatrooms/core/config.py
import os
from typing import Literal
from dotenv import load_dotenv


def _env_bool(name: str, default: str = "false") -> bool:
    return os.getenv(name, default).strip().lower() in ("1", "true", "yes", "on")


class Settings:
    """
    Setup environment variables.
        - DATABASE_URL the SQLAlchemy async url for users and messages
        - PUB_SUB_SERVICE the fan-out backend to use: "local" or "redis"
        - JWT_SECRET the shared secret used to verify bearer tokens
        - CHAT_REQUIRE_AUTH reject unauthenticated sockets and spoofed senders
    """

    # Load environment variables from the .env file
    load_dotenv()

    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./chatrooms.db")
    DB_ECHO: bool = _env_bool("DB_ECHO")

    PUB_SUB_SERVICE: Literal["local", "redis"] = os.getenv("PUB_SUB_SERVICE", "local")

    REDIS_HOST: str = os.getenv("REDIS_HOST", "localhost")
    REDIS_PORT: int = int(os.getenv("REDIS_PORT", "6379"))
    REDIS_ACCESS_KEY: str = os.getenv("REDIS_ACCESS_KEY", "")
    REDIS_SSL: bool = _env_bool("REDIS_SSL")
    REDIS_CHANNEL_PREFIX: str = os.getenv("REDIS_CHANNEL_PREFIX", "chat")

    JWT_SECRET: str = os.getenv("JWT_SECRET", "")
    JWT_ALGORITHM: str = os.getenv("JWT_ALGORITHM", "HS256")
    JWT_EXPIRES_MINUTES: int = int(os.getenv("JWT_EXPIRES_MINUTES", "60"))

    CHAT_REQUIRE_AUTH: bool = _env_bool("CHAT_REQUIRE_AUTH")
    MESSAGE_MAX_LENGTH: int = int(os.getenv("MESSAGE_MAX_LENGTH", "5000"))

settings = Settings()
