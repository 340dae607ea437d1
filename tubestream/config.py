from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """Application configuration loaded from environment variables."""

    host: str = "0.0.0.0"
    port: int = 7652
    debug: bool = False

    request_timeout: int = 30
    max_retries: int = 3
    user_agent: str = (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) "
        "AppleWebKit/537.36 (KHTML, like Gecko) "
        "Chrome/131.0.0.0 Safari/537.36"
    )
    # Comma-separated origins for CORS (e.g. "https://app.example.com"). Empty = allow "*" with no credentials.
    cors_origins: str = ""

    # Progressive transfers: bytes requested per Range window, and per read from the body.
    dl_chunk_size: int = 10 * 1024 * 1024
    read_size: int = 64 * 1024
    # Parallel content-length probes while building a catalog.
    probe_concurrency: int = 8
    probe_content_length: bool = True

    # Seconds between live playlist polls. 0 = use the playlist's target duration.
    live_poll_interval: float = 0
    segment_retries: int = 1

    # Budget for every transform evaluation.
    js_max_steps: int = 1_000_000
    js_timeout: float = 5.0
    # Mark formats unusable when their "n" parameter cannot be transformed.
    strict_n_param: bool = True

    class Config:
        env_file = ".env"
        env_file_encoding = "utf-8"


_settings: Settings | None = None


def get_settings() -> Settings:
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings
