"""
Unit tests for environment-driven configuration.
"""

import pytest

from apitize.versioning_server.config import (
    HttpConfig,
    LifecycleConfig,
    ServerConfig,
    SnsConfig,
    StoreBackend,
)


@pytest.fixture
def clean_env(monkeypatch):
    """Remove every variable the config reads."""
    for name in (
        "STORE_BACKEND",
        "DYNAMODB_TABLE_PREFIX",
        "AWS_S3_BUCKET",
        "S3_SPEC_PREFIX",
        "SNS_ENABLED",
        "SNS_LIFECYCLE_TOPIC_ARN",
        "HTTP_HOST",
        "HTTP_PORT",
        "HTTP_CORS_ORIGINS",
        "SWEEPER_ENABLED",
        "SWEEP_INTERVAL_SECONDS",
        "DEPLOYMENT_WEBHOOK_URL",
        "ROLLBACK_ERROR_RATE_PCT",
        "ROLLBACK_RESPONSE_TIME_MS",
        "CONTRACT_TEST_SUITE",
        "LOG_LEVEL",
        "LOG_FORMAT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestServerConfig:
    """Tests for ServerConfig.from_env and validate."""

    def test_defaults(self, clean_env):
        config = ServerConfig.from_env()

        assert config.backend is StoreBackend.AWS
        assert config.dynamodb.table_prefix == "apitize"
        assert config.s3.spec_prefix == "api-specifications"
        assert config.http.port == 8080
        assert config.http.cors_origins == ("*",)
        assert config.lifecycle.sweeper_enabled
        assert config.planner.rollback_error_rate_pct == 5.0
        assert config.deployment.webhook_url is None

    def test_overrides(self, clean_env):
        clean_env.setenv("STORE_BACKEND", "MEMORY")
        clean_env.setenv("HTTP_PORT", "9000")
        clean_env.setenv("HTTP_CORS_ORIGINS", "https://a.io, https://b.io")
        clean_env.setenv("SWEEPER_ENABLED", "false")
        clean_env.setenv("ROLLBACK_RESPONSE_TIME_MS", "750")
        clean_env.setenv("LOG_FORMAT", "text")

        config = ServerConfig.from_env()

        assert config.backend is StoreBackend.MEMORY
        assert config.http.port == 9000
        assert config.http.cors_origins == ("https://a.io", "https://b.io")
        assert not config.lifecycle.sweeper_enabled
        assert config.planner.rollback_response_time_ms == 750
        assert config.observability.log_format == "text"

    def test_invalid_backend(self, clean_env):
        clean_env.setenv("STORE_BACKEND", "postgres")
        with pytest.raises(ValueError, match="STORE_BACKEND"):
            ServerConfig.from_env()

    def test_sns_requires_topic(self, clean_env):
        clean_env.setenv("SNS_ENABLED", "true")
        with pytest.raises(ValueError, match="SNS_LIFECYCLE_TOPIC_ARN"):
            ServerConfig.from_env()

    def test_sweep_interval_must_be_positive(self):
        config = ServerConfig(lifecycle=LifecycleConfig(sweep_interval_seconds=0))
        with pytest.raises(ValueError, match="SWEEP_INTERVAL_SECONDS"):
            config.validate()

    def test_memory_backend_skips_aws_checks(self):
        config = ServerConfig(backend=StoreBackend.MEMORY)
        config.validate()

    def test_sns_enabled_with_topic(self):
        config = ServerConfig(sns=SnsConfig(enabled=True, topic_arn="arn:aws:sns:x"))
        config.validate()

    def test_empty_cors_only_warns(self, caplog):
        config = ServerConfig(http=HttpConfig(cors_origins=()))
        config.validate()
        assert "HTTP_CORS_ORIGINS" in caplog.text
