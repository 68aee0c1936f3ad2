from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # OpenRouter
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api/v1"
    default_model: str = "openai/gpt-4o-mini"
    openrouter_model: str = ""
    embedding_model: str = "openai/text-embedding-3-small"
    llm_max_tokens: int = 4096

    # Search provider
    search_provider: str = "brave"  # brave | tavily
    brave_api_key: str = ""
    tavily_api_key: str = ""
    search_fallback_to_tavily: bool = True
    search_timeout_seconds: float = 30.0
    search_max_parallel_requests: int = 8
    search_cache_ttl_seconds: int = 3600
    search_cache_max_entries: int = 500

    # Scraping
    scrape_timeout_ms: int = 15000
    scrape_retry_max: int = 1
    scrape_max_parallel_requests: int = 8
    scrape_max_content_chars: int = 50000
    scrape_cache_ttl_seconds: int = 3600
    scrape_cache_max_entries: int = 500

    # Research defaults
    default_effort: str = "standard"  # standard | deep | max
    analysis_max_content_chars: int = 12000

    # App
    cors_origins: str = "http://localhost:3000"
    log_dir: str = "logs"
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cors_origin_list(self) -> list[str]:
        return [o.strip() for o in self.cors_origins.split(",")]


settings = Settings()
