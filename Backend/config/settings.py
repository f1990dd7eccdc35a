import os
from functools import lru_cache

from dotenv import load_dotenv
from pydantic_settings import BaseSettings

load_dotenv()


@lru_cache
def get_env_filename():
    runtime_env = os.getenv("ENV")
    return f".env.{runtime_env}" if runtime_env else ".env"


class Settings(BaseSettings):
    ENVIRONMENT: str = "development"
    APP_NAME: str = "BuildIt Scoping API"
    APP_VERSION: str = "0.1.0"
    APP_PORT: int = 8000
    LOG_LEVEL: str = "INFO"
    ALLOWED_ORIGIN: str = "http://localhost:5173"

    LLM_PROVIDER: str = "anthropic"
    LLM_MAX_TOKENS: int = 4096
    PROVIDER_SDK_MAX_RETRIES: int = 0

    ANTHROPIC_API_KEY: str = ""
    ANTHROPIC_MODEL: str = "claude-3-5-sonnet-20241022"

    OPENAI_API_KEY: str = ""
    OPENAI_MODEL: str = "gpt-4o"

    STREAM_MAX_RETRIES: int = 2
    STREAM_INITIAL_RETRY_DELAY_SECONDS: float = 1.0
    STREAM_TOKEN_BATCH_CHARS: int = 50
    STREAM_BUFFER_UNTIL_DONE: bool = False

    RATE_LIMIT_UNAUTHENTICATED: int = 5
    RATE_LIMIT_AUTHENTICATED: int = 15
    RATE_LIMIT_WINDOW_SECONDS: int = 60 * 60

    CONTEXT_TOKEN_WARNING_THRESHOLD: int = 4500
    CONTEXT_FULL_FIDELITY_INTERACTIONS: int = 3
    CONTEXT_SUMMARY_CHARS: int = 100

    ESCAPE_HATCH_INTERACTIONS: int = 8
    ESCAPE_HATCH_SCORE_MIN: int = 60
    ESCAPE_HATCH_SCORE_MAX: int = 80

    MONGODB_URI: str = "mongodb://localhost:27017"
    MONGODB_DATABASE: str = "BuildIt"
    MONGODB_TIMEOUT_MS: int = 5000
    PROJECT_COLLECTION_NAME: str = "Project"
    PROJECT_PHOTOS_COLLECTION_NAME: str = "ProjectPhotos"
    INTERACTIONS_COLLECTION_NAME: str = "Interactions"
    USER_COLLECTION_NAME: str = "User"

    class Config:
        env_file = get_env_filename()


@lru_cache
def get_settings():
    return Settings()
