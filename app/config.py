from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # Anthropic (or OpenRouter through the Anthropic-compatible endpoint)
    anthropic_api_key: str = ""
    openrouter_api_key: str = ""
    openrouter_base_url: str = "https://openrouter.ai/api"
    openrouter_model: str = ""
    default_model: str = "claude-sonnet-4-5-20250929"
    classifier_model: str = ""  # optional override for media classification only

    # Browserbase remote browsers
    browserbase_api_key: str = ""
    browserbase_project_id: str = ""
    browserbase_base_url: str = "https://api.browserbase.com/v1"

    # Quote search
    quote_platforms: str = "taskrabbit,thumbtack"
    agent_max_steps: int = 25
    navigation_timeout_ms: int = 30000
    worker_timeout_seconds: float = 600.0
    session_grace_period_seconds: float = 300.0
    log_entry_max_chars: int = 200
    subscriber_queue_size: int = 256
    sse_ping_seconds: int = 15

    # Media analysis
    analyze_max_files: int = 10
    analyze_max_file_mb: int = 100

    # App
    static_dir: str = "dist"
    cors_origins: str = "http://localhost:5173"
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

    @property
    def platform_list(self) -> list[str]:
        return [p.strip().lower() for p in self.quote_platforms.split(",") if p.strip()]


settings = Settings()
