import os
from dotenv import load_dotenv

load_dotenv()


def _split_origins(value: str):
    return [origin.strip() for origin in value.split(",") if origin.strip()]


class Config:
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key")

    # Frontend origins allowed to call /api/*
    CORS_ORIGINS = _split_origins(
        os.environ.get("CORS_ORIGINS", "http://localhost:5173,http://localhost:3000")
    )

    # "memory" keeps groups in process; "mysql" stores them with the settings below
    STORAGE_BACKEND = os.environ.get("STORAGE_BACKEND", "memory").lower()

    DB_HOST = os.environ.get("DB_HOST", "localhost")
    DB_PORT = int(os.environ.get("DB_PORT", 3306))
    DB_USER = os.environ.get("DB_USER", "root")
    DB_PASSWORD = os.environ.get("DB_PASSWORD", "")
    DB_NAME = os.environ.get("DB_NAME", "splitledger")
    DB_POOL_SIZE = int(os.environ.get("DB_POOL_SIZE", 5))

    REPOSITORY_RETRIES = int(os.environ.get("REPOSITORY_RETRIES", 4))
    REPOSITORY_BACKOFF = float(os.environ.get("REPOSITORY_BACKOFF", 0.35))

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO").upper()

config = Config()
