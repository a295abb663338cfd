from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Search
    search_endpoint: str = "https://html.duckduckgo.com/html/"
    search_timeout_seconds: float = 10.0

    # Fetch / cleanup
    fetch_timeout_seconds: float = 10.0
    parse_timeout_seconds: float = 5.0
    max_content_length: int = 20000
    user_agent: str = "Mozilla/5.0 (compatible; abot/0.1; +https://example.local)"

    # Summarization (OpenAI-compatible chat backend, llama.cpp by default)
    llm_base_url: str = "http://localhost:8080/v1"
    llm_api_key: str = "not-needed"
    llm_model: str = "phi4"
    llm_max_tokens: int = 512
    summary_timeout_seconds: float = 15.0
    summary_fallback_words: int = 1000

    # Orchestration
    batch_size: int = 4
    max_results: int = 10
    research_deadline_seconds: float | None = 60.0

    # Document cache
    cache_root: str = "~/.cache/abot"
    cache_max_age_hours: int = 24

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = "logs"

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }

    @property
    def cache_max_age_seconds(self) -> int:
        return max(int(self.cache_max_age_hours), 0) * 60 * 60


settings = Settings()
