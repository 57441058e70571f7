from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    app_name: str = "HueBrief AI Gate"
    app_env: str = "development"
    app_host: str = "0.0.0.0"
    app_port: int = 5000
    cors_origins: str = "http://localhost:5173"
    cors_allow_credentials: bool = True
    log_level: str = "INFO"
    request_id_header: str = "X-Request-ID"

    aws_region: str = "us-east-1"
    bedrock_model_id: str = "amazon.nova-pro-v1:0"
    # The single retry goes to the cheaper model so a saturated primary does not fail twice.
    bedrock_fallback_model_id: str = "amazon.nova-lite-v1:0"
    agent_temperature: float = 0.4
    agent_max_tokens: int = 4096

    # Seeds for the admin settings store (source=env until an admin update).
    ai_draft_title_max_length: int = 60
    ai_model_timeout_ms: int = 15000

    # Honors the x-ai-draft-scenario header. Never enable outside test environments.
    enable_ai_draft_test_scenario: bool = False

    ai_grounding_min_overlap: float = 0.35
    ai_title_copy_threshold: float = 0.8
    ai_content_copy_threshold: float = 0.6
    ai_citation_allowlist: str = ""
    ai_compliance_block_level: str = "medium"

    alert_window_minutes: int = 10
    alert_sample_capacity: int = 2000
    alert_history_limit: int = 100
    alert_failure_rate_warning: float = 0.2
    alert_failure_rate_critical: float = 0.4
    alert_p95_latency_warning_ms: float = 1500.0
    alert_p95_latency_critical_ms: float = 3000.0
    alert_ai_error_warning: int = 3
    alert_ai_error_critical: int = 6
    alert_tick_seconds: float = 0.0

    model_config = SettingsConfigDict(env_file=".env", env_file_encoding="utf-8", extra="ignore")

    @property
    def cors_origins_list(self) -> list[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def citation_allowlist(self) -> list[str]:
        return [url.strip() for url in self.ai_citation_allowlist.split(",") if url.strip()]


settings = Settings()
