"""
ElasticOps Triage Engine - Configuration Management
"""
from pydantic_settings import BaseSettings, SettingsConfigDict
from functools import lru_cache


class Settings(BaseSettings):
    """Application settings"""

    # FastAPI
    fastapi_env: str = "development"
    fastapi_host: str = "0.0.0.0"
    fastapi_port: int = 8000

    # Elasticsearch
    elastic_url: str = "http://localhost:9200"
    elastic_api_key: str = ""
    elastic_timeout_seconds: float = 30.0
    elastic_max_retries: int = 3

    # Embeddings
    embed_dims: int = 384

    # Retrieval
    rrf_k: int = 60

    # Spike window and incident dedup window are separate constants
    spike_window_minutes: int = 5
    spike_error_threshold: int = 40
    incident_dedup_window_minutes: int = 10
    duplicate_similarity_threshold: float = 0.95

    # Evidence gate
    min_citations: int = 2

    # Links rendered from citations
    app_base_url: str = ""

    # Logging
    log_level: str = "INFO"

    model_config = SettingsConfigDict(
        env_file=".env",
        case_sensitive=False
    )

    @property
    def ELASTIC_AUTH_HEADER(self) -> dict:
        """Authorization header for the Elasticsearch REST API"""
        if not self.elastic_api_key:
            return {}
        return {"Authorization": f"ApiKey {self.elastic_api_key}"}


@lru_cache()
def get_settings() -> Settings:
    """Get cached settings instance"""
    return Settings()
