from pydantic_settings import BaseSettings

PRODUCT_NAME = "light-browser"
VERSION = "0.1.0"

STEALTH_USER_AGENT = (
    "Mozilla/5.0 (Macintosh; Intel Mac OS X 10_15_7) AppleWebKit/537.36 "
    "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
)


class Settings(BaseSettings):
    # Browser
    browser_headless: bool = True
    browser_javascript: bool = True
    browser_timeout_ms: int = 30000
    viewport_width: int = 1280
    viewport_height: int = 720

    # Engine / escalation
    max_tier: int = 3  # 1=static | 2=scripted_dom | 3=full_browser
    auto_escalate: bool = True
    follow_redirects: bool = True
    max_redirects: int = 10
    antibot_mode: str = "honest"  # honest | stealth
    user_agent: str = ""  # overrides antibot_mode when set
    extra_headers: dict[str, str] = {}
    scripted_dom_settle_ms: int = 500
    full_browser_extra_wait_ms: int = 100
    full_browser_network_idle: bool = True

    # Escalation heuristics
    escalation_min_body_chars: int = 100
    escalation_min_noscript_chars: int = 50

    # Token budget
    truncation_indicator_tokens: int = 20

    # Semantic filter / embeddings
    semantic_threshold: float = 0.3
    semantic_top_k: int = 10
    embed_model: str = "sentence-transformers/all-MiniLM-L6-v2"
    embed_batch_size: int = 32

    # Output
    output_format: str = "text"  # text | json
    batch_concurrency: int = 1

    # App
    app_log_level: str = "INFO"
    noisy_log_level: str = "WARNING"
    log_dir: str = ""  # empty disables the file sink

    model_config = {
        "env_prefix": "LIGHT_BROWSER_",
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "extra": "ignore",
    }


def resolve_user_agent(config: Settings) -> str:
    if config.user_agent.strip():
        return config.user_agent.strip()
    if config.antibot_mode.lower().strip() == "stealth":
        return STEALTH_USER_AGENT
    return f"{PRODUCT_NAME}/{VERSION} (+https://github.com/danilop/light-browser)"


settings = Settings()
