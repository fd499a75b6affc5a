"""Service configuration, env-driven.

Centralized config using pydantic-settings. Reads from a .env file and
ARTIFACTFORGE_* environment variables.
"""

from __future__ import annotations

from pydantic_settings import BaseSettings, SettingsConfigDict

P5_CDN_URL = "https://cdn.jsdelivr.net/npm/p5@1.0.0/lib/p5.min.js"


class ForgeConfig(BaseSettings):
    """Pipeline configuration with environment variable overrides.

    All settings can be overridden via ARTIFACTFORGE_* environment variables
    or a .env file in the project root.

    Examples
    --------
    Override via environment::

        export ARTIFACTFORGE_NETWORK=sepolia
        export ARTIFACTFORGE_RPC_URL=https://sepolia.example/rpc
        export ARTIFACTFORGE_STORAGE_BACKEND=s3

    Or via .env file::

        ARTIFACTFORGE_ENVIRONMENT=production
        ARTIFACTFORGE_RENDER_POOL_SIZE=4
    """

    model_config = SettingsConfigDict(
        env_file=".env",
        env_prefix="ARTIFACTFORGE_",
        env_file_encoding="utf-8",
    )

    # Runtime environment
    environment: str = "development"
    log_level: str = "INFO"
    debug: bool = False

    # Chain access
    network: str = "sepolia"
    rpc_url: str = ""
    rpc_timeout_seconds: float = 30.0
    generator_address: str = ""
    token_address: str = ""

    # Storage: "memory", "s3" (S3-compatible, e.g. R2) or "blob" (managed blob store)
    storage_backend: str = "memory"
    s3_endpoint_url: str | None = None
    s3_bucket: str = "token-artifacts"
    s3_region: str = "auto"
    s3_access_key_id: str = ""
    s3_secret_access_key: str = ""
    s3_public_url: str = ""
    blob_url: str = ""
    blob_service_key: str = ""
    blob_bucket: str = "token-artifacts"

    # Rendering
    render_pool_size: int = 2
    render_deadline_seconds: float = 300.0
    load_timeout_seconds: float = 180.0
    extraction_timeout_seconds: float = 60.0
    completion_poll_interval_seconds: float = 0.5
    canvas_width: int = 1200
    viewport_width: int = 2400
    viewport_height: int = 1800
    canvas_selector: str = "canvas"
    library_urls: list[str] = [P5_CDN_URL]

    # Retry policy
    max_fetch_attempts: int = 3
    max_render_attempts: int = 2
    upload_attempts: int = 3
    trace_attempts: int = 2
    publish_rounds: int = 2
    retry_backoff_seconds: float = 1.0

    # Caching of immutable / slow-changing chain reads
    locator_cache_ttl_seconds: float = 86400.0

    # Freshness polling (consumer side)
    poll_interval_seconds: float = 5.0
    poll_max_attempts: int = 24

    # HTTP surface
    host: str = "0.0.0.0"
    port: int = 8080
    short_cache_max_age: int = 3600
    stale_while_revalidate: int = 86400

    @property
    def is_production(self) -> bool:
        """Whether running in production mode."""
        return self.environment == "production"


# Module-level singleton: import as `from artifactforge.config import config`
config = ForgeConfig()
