from pydantic_settings import BaseSettings
from functools import lru_cache


class Settings(BaseSettings):
    # Application
    app_name: str = "Progressive Writing Practice"
    debug: bool = False

    # Supabase
    supabase_url: str
    supabase_service_key: str

    # OpenAI
    openai_api_key: str = ""
    openai_model: str = "gpt-4o-mini"

    # Gemini
    gemini_api_key: str = ""
    gemini_model: str = "gemini-2.5-flash"
    llm_provider: str = "openai"

    # Upper bound on a single LLM call, in seconds
    llm_timeout_seconds: float = 12.0

    # PWP sessions: "memory" or "supabase"
    pwp_session_store: str = "memory"
    # "fail-open" or "fail-closed"
    pwp_validation_failure_policy: str = "fail-open"

    # CORS
    frontend_url: str = "http://localhost:3000"

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


@lru_cache
def get_settings() -> Settings:
    return Settings()
