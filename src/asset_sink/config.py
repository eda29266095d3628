from typing import Optional

from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import computed_field


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", env_ignore_empty=True, extra="ignore")

    # Application
    app_env: str = "development"
    log_level: str = "INFO"

    # Object Storage (S3-compatible)
    object_store_type: str = "s3"  # Backend key resolved by get_backend()
    object_store_endpoint: str = ""
    object_store_access_key: Optional[str] = None
    object_store_secret_key: Optional[str] = None
    object_store_region: str = "us-east-1"
    object_store_use_ssl: bool = False
    object_store_bucket: str = "assets"

    # Content addressing
    hash_algorithm: str = "sha1"

    # Facade retry policy (fixed count, not configurable per call)
    retry_attempts: int = 3
    retry_backoff_seconds: float = 0.0

    # Streaming
    stream_queue_size: int = 16
    stream_idle_timeout_seconds: Optional[float] = 300.0
    multipart_chunk_bytes: int = 8 * 1024 * 1024  # S3 minimum part size is 5 MiB
    read_chunk_bytes: int = 64 * 1024

    # Observability
    otel_exporter: str = "none"
    otel_service_name: str = "asset-sink"
    otel_exporter_otlp_endpoint: str = "http://localhost:4317"

    @computed_field
    @property
    def endpoint_url(self) -> Optional[str]:
        """
        Full endpoint URL for the S3 client, or ``None`` to use AWS defaults.

        A scheme-less ``OBJECT_STORE_ENDPOINT`` (``minio:9000``) gets
        ``http://`` or ``https://`` depending on ``OBJECT_STORE_USE_SSL``.
        """
        endpoint = self.object_store_endpoint.strip()
        if not endpoint:
            return None
        if not endpoint.startswith(("http://", "https://")):
            scheme = "https" if self.object_store_use_ssl else "http"
            endpoint = f"{scheme}://{endpoint}"
        return endpoint

settings = Settings()
