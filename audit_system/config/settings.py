"""Application settings using Pydantic BaseSettings for environment variable management."""

from pydantic import Field
from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    """
    Audit pipeline settings loaded from environment variables.

    Components receive a Settings instance at construction time; nothing
    below the CLI/HTTP entry points reads the environment directly.

    Attributes:
        gemini_api_key: Google Gemini API key for the inference service
        gemini_model: Gemini model used for discovery, verification and assessment
        inference_timeout_seconds: Hard timeout per inference call
        inference_max_retries: Retries on transport errors (timeouts are not retried)
        max_rpm: Client-side request budget per minute
        fetch_timeout_seconds: Timeout per source page fetch
        fetch_max_chars: Cap on extracted page text handed to extraction
        fetch_min_chars: Pages with less text than this are discarded
        discovery_min_sources: Fewer discovered sources is insufficient signal
        refresh_batch_size: Candidate cap per refresh sweep
        refresh_stale_days: Snapshot age that makes a product a sweep candidate
        freshness_window_days: Age above which the integrity check asks for refresh
        cron_secret: Shared secret accepted as a Bearer token by the sweep trigger
        store_path: Directory for JSON persistence (memory-only when unset)
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Log output format (json for production, console for dev)
    """

    gemini_api_key: str = Field(default="", description="Google Gemini API key")
    gemini_model: str = Field(
        default="gemini-1.5-flash",
        description="Default Gemini model identifier",
    )
    inference_timeout_seconds: float = Field(
        default=30.0,
        description="Timeout per inference call in seconds",
    )
    inference_max_retries: int = Field(
        default=2,
        description="Retries for transient inference transport errors",
    )
    max_rpm: int = Field(
        default=15,
        description="Maximum inference requests per minute",
    )

    fetch_timeout_seconds: float = Field(default=12.0, description="Source fetch timeout")
    fetch_max_chars: int = Field(default=140_000, description="Max page text characters")
    fetch_min_chars: int = Field(default=2_000, description="Min page text characters")
    fetch_user_agent: str = Field(
        default="audit-system/0.1 (+evidence-fetcher)",
        description="User agent for source fetches",
    )

    discovery_min_sources: int = Field(default=3, description="Minimum discovered sources")
    discovery_max_sources: int = Field(default=5, description="Maximum discovered sources")
    fetch_min_pages: int = Field(default=2, description="Minimum successfully fetched pages")

    corroboration_min_count: int = Field(
        default=2,
        description="Fragments required before a claim key is trusted",
    )
    corroboration_max_claims: int = Field(
        default=25,
        description="Maximum corroborated claims kept per run",
    )
    claim_key_max_length: int = Field(
        default=180,
        description="Truncation length of canonical claim keys",
    )
    evidence_min_claims: int = Field(
        default=5,
        description="Minimum corroborated claims for a usable stage 2 output",
    )
    evidence_min_sources: int = Field(
        default=3,
        description="Minimum distinct contributing sources for a usable stage 2 output",
    )

    refresh_batch_size: int = Field(default=10, description="Refresh sweep batch cap")
    refresh_stale_days: int = Field(default=30, description="Refresh sweep staleness threshold")
    freshness_window_days: int = Field(default=30, description="Integrity check freshness window")
    claim_lease_seconds: int = Field(
        default=900,
        description="Age after which an abandoned claimed run may be released",
    )

    cron_secret: str | None = Field(
        default=None,
        description="Bearer secret accepted by the scheduled sweep trigger",
    )
    store_path: str | None = Field(
        default=None,
        description="Directory for JSON store persistence",
    )

    log_level: str = Field(default="INFO", description="Logging level")
    log_format: str = Field(
        default="json",
        description="Log output format: json or console",
    )

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "case_sensitive": False,
        "extra": "ignore",
    }


# Default instance for the CLI and HTTP entry points
settings = Settings()
