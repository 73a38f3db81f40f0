"""
Test configuration management
"""
from elasticops.config import Settings, get_settings


def test_settings_singleton():
    """Test settings returns same instance"""
    settings1 = get_settings()
    settings2 = get_settings()
    assert settings1 is settings2


def test_workflow_constants():
    """Spike window and incident dedup window are separate settings"""
    settings = Settings()
    assert settings.spike_window_minutes == 5
    assert settings.spike_error_threshold == 40
    assert settings.incident_dedup_window_minutes == 10
    assert settings.duplicate_similarity_threshold == 0.95
    assert settings.min_citations == 2
    assert settings.rrf_k == 60


def test_env_override(monkeypatch):
    monkeypatch.setenv("MIN_CITATIONS", "3")
    monkeypatch.setenv("ELASTIC_URL", "https://cluster.example:9243")
    settings = Settings()
    assert settings.min_citations == 3
    assert settings.elastic_url == "https://cluster.example:9243"


def test_auth_header():
    assert Settings(elastic_api_key="").ELASTIC_AUTH_HEADER == {}
    assert Settings(elastic_api_key="abc").ELASTIC_AUTH_HEADER == {"Authorization": "ApiKey abc"}
