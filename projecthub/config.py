from pathlib import Path
from typing import Literal

from dotenv import load_dotenv
from pydantic_settings import BaseSettings, SettingsConfigDict


BASE_DIR = Path(__file__).resolve().parent.parent
ENV_PATH = BASE_DIR / ".env"
DEFAULT_SA_PATH = BASE_DIR / "serviceAccountKey.json"
load_dotenv(ENV_PATH)

class Settings(BaseSettings):
    #FIREBASE
    FIREBASE_PROJECT_ID: str | None = None
    GOOGLE_APPLICATION_CREDENTIALS: str = str(DEFAULT_SA_PATH)
    FIREBASE_SERVICE_ACCOUNT_JSON: str | None = None
    ALLOWED_ORIGINS: str = "http://localhost:3000,http://127.0.0.1:3000"

    # Storage: "firestore" in production, "memory" for local runs and tests
    STORE_BACKEND: Literal["firestore", "memory"] = "firestore"

    # Firestore collection names
    PROJECTS_COLLECTION: str = "projects"
    MEMBERS_COLLECTION: str = "project_members"

    LOG_LEVEL: str = "INFO"
    DEFAULT_LANGUAGE: Literal["en", "ja"] = "en"

    model_config = SettingsConfigDict(
        env_file=str(ENV_PATH),
        env_file_encoding="utf-8",
        extra="ignore",
    )

settings = Settings()
