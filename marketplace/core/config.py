from typing import List

from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    APP_NAME: str = "Freelance Marketplace API"
    LOG_LEVEL: str = "INFO"

    # Firebase Admin SDK; paths are relative to the working directory
    FIREBASE_CREDENTIALS_PATH: str = "service-account-key.json"
    FIREBASE_CONFIG_PATH: str = "Firebase.json"
    FIREBASE_PROJECT_ID: str | None = None

    JWT_SECRET: str = "change-me"
    JWT_ALGORITHM: str = "HS256"
    ACCESS_TOKEN_EXPIRE_DAYS: int = 30
    BCRYPT_ROUNDS: int = 12

    CORS_ORIGINS: List[str] = ["*"]

    model_config = SettingsConfigDict(env_file=".env", extra="ignore")


settings = Settings()
