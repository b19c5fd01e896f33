# backend/artschool/config.py
from typing import List

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # DB URL used by SQLAlchemy. Adjust if you used a different DB name.
    DATABASE_URL: str = "postgresql+psycopg2://postgres:postgres@db:5432/artschool"

    # App options (used by db.py and elsewhere)
    DEBUG: bool = False
    LOG_LEVEL: str = "INFO"

    # Create tables on startup (DEV ONLY, production uses migrations)
    AUTO_CREATE_TABLES: bool = True

    # Shared password given to students created by the bulk import
    DEFAULT_STUDENT_PASSWORD: str = "123456"
    BCRYPT_ROUNDS: int = 10

    # Upload guard for the student import endpoint (bytes)
    IMPORT_MAX_BYTES: int = 5 * 1024 * 1024

    CORS_ORIGINS: List[str] = [
        "http://localhost:3000",
        "http://127.0.0.1:3000",
        "http://localhost:5173",
        "http://127.0.0.1:5173",
    ]

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"
        extra = "ignore"


settings = Settings()
