"""
Configuration management for the versioning server.

All configuration is done via environment variables - no config files inside containers.
This module provides typed configuration classes with validation.

Invariants:
    - All settings have sensible defaults for local development
    - Production deployments MUST set explicit values for table prefix and bucket
    - Secrets are never logged or exposed in error messages

How to change safely:
    - Add new settings with defaults that maintain backward compatibility
    - Deprecate settings by logging warnings but continuing to support them
"""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from enum import Enum

logger = logging.getLogger(__name__)


class StoreBackend(Enum):
    """Supported persistence backends."""

    AWS = "aws"
    MEMORY = "memory"


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).lower() == "true"


@dataclass(frozen=True)
class DynamoDbConfig:
    """DynamoDB record store configuration.

    Attributes:
        table_prefix: Prefix for all table names ("<prefix>-api-versions", ...)
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack / DynamoDB Local)
        timeout_seconds: Timeout applied to every DynamoDB call
    """

    table_prefix: str = "apitize"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> DynamoDbConfig:
        """Load configuration from environment variables."""
        return cls(
            table_prefix=os.getenv("DYNAMODB_TABLE_PREFIX", "apitize"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("DYNAMODB_ENDPOINT"),
            timeout_seconds=float(os.getenv("DYNAMODB_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class S3Config:
    """S3 configuration for specification documents.

    Attributes:
        bucket: S3 bucket name
        region: AWS region
        endpoint_url: Custom endpoint URL (for MinIO)
        spec_prefix: Prefix for stored OpenAPI documents
        access_key_id: AWS access key ID (optional, uses AWS credential chain)
        secret_access_key: AWS secret access key (optional)
        timeout_seconds: Timeout applied to every S3 call
    """

    bucket: str = "apitize-storage"
    region: str = "us-east-1"
    endpoint_url: str | None = None
    spec_prefix: str = "api-specifications"
    access_key_id: str | None = None
    secret_access_key: str | None = None
    timeout_seconds: float = 30.0

    @classmethod
    def from_env(cls) -> S3Config:
        """Load configuration from environment variables."""
        return cls(
            bucket=os.getenv("AWS_S3_BUCKET", "apitize-storage"),
            region=os.getenv("S3_REGION", os.getenv("AWS_REGION", "us-east-1")),
            endpoint_url=os.getenv("S3_ENDPOINT"),
            spec_prefix=os.getenv("S3_SPEC_PREFIX", "api-specifications"),
            access_key_id=os.getenv("AWS_ACCESS_KEY_ID"),
            secret_access_key=os.getenv("AWS_SECRET_ACCESS_KEY"),
            timeout_seconds=float(os.getenv("S3_TIMEOUT_SECONDS", "30")),
        )


@dataclass(frozen=True)
class SnsConfig:
    """SNS notification sink configuration.

    Attributes:
        enabled: Whether lifecycle notifications are published to SNS
        topic_arn: Topic receiving deprecation / retirement notifications
        region: AWS region
        endpoint_url: Custom endpoint URL (for LocalStack testing)
        timeout_seconds: Timeout applied to every Publish call
    """

    enabled: bool = False
    topic_arn: str | None = None
    region: str = "us-east-1"
    endpoint_url: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> SnsConfig:
        """Load configuration from environment variables."""
        return cls(
            enabled=_env_bool("SNS_ENABLED", "false"),
            topic_arn=os.getenv("SNS_LIFECYCLE_TOPIC_ARN"),
            region=os.getenv("AWS_REGION", os.getenv("AWS_DEFAULT_REGION", "us-east-1")),
            endpoint_url=os.getenv("SNS_ENDPOINT"),
            timeout_seconds=float(os.getenv("SNS_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class DeploymentConfig:
    """Deployment orchestrator configuration.

    Attributes:
        webhook_url: Endpoint called to tear down a retired version's deployment.
            When unset, teardown requests are only logged.
        timeout_seconds: Timeout for webhook calls
    """

    webhook_url: str | None = None
    timeout_seconds: float = 10.0

    @classmethod
    def from_env(cls) -> DeploymentConfig:
        """Load configuration from environment variables."""
        return cls(
            webhook_url=os.getenv("DEPLOYMENT_WEBHOOK_URL"),
            timeout_seconds=float(os.getenv("DEPLOYMENT_TIMEOUT_SECONDS", "10")),
        )


@dataclass(frozen=True)
class HttpConfig:
    """HTTP API configuration.

    Attributes:
        host: Address to bind
        port: Port to listen on
        cors_origins: Allowed CORS origins ("*" allows any)
    """

    host: str = "0.0.0.0"
    port: int = 8080
    cors_origins: tuple[str, ...] = ("*",)

    @classmethod
    def from_env(cls) -> HttpConfig:
        """Load configuration from environment variables."""
        origins = os.getenv("HTTP_CORS_ORIGINS", "*")
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            cors_origins=tuple(o.strip() for o in origins.split(",") if o.strip()),
        )


@dataclass(frozen=True)
class LifecycleConfig:
    """Background loop configuration.

    Attributes:
        sweeper_enabled: Whether the automatic retirement sweeper runs
        sweep_interval_seconds: Interval between retirement sweeps
        dispatch_interval_seconds: Interval between outbox dispatch passes
    """

    sweeper_enabled: bool = True
    sweep_interval_seconds: int = 3600
    dispatch_interval_seconds: float = 1.0

    @classmethod
    def from_env(cls) -> LifecycleConfig:
        """Load configuration from environment variables."""
        return cls(
            sweeper_enabled=_env_bool("SWEEPER_ENABLED", "true"),
            sweep_interval_seconds=int(os.getenv("SWEEP_INTERVAL_SECONDS", "3600")),
            dispatch_interval_seconds=float(os.getenv("DISPATCH_INTERVAL_SECONDS", "1")),
        )


@dataclass(frozen=True)
class PlannerConfig:
    """Migration planner configuration.

    Attributes:
        rollback_error_rate_pct: Error rate that triggers a rollback
        rollback_response_time_ms: Response time that triggers a rollback
        contract_test_suite: Contract suite attached to every plan
    """

    rollback_error_rate_pct: float = 5.0
    rollback_response_time_ms: int = 2000
    contract_test_suite: str = "contract-test-suite"

    @classmethod
    def from_env(cls) -> PlannerConfig:
        """Load configuration from environment variables."""
        return cls(
            rollback_error_rate_pct=float(os.getenv("ROLLBACK_ERROR_RATE_PCT", "5")),
            rollback_response_time_ms=int(os.getenv("ROLLBACK_RESPONSE_TIME_MS", "2000")),
            contract_test_suite=os.getenv("CONTRACT_TEST_SUITE", "contract-test-suite"),
        )


@dataclass(frozen=True)
class ObservabilityConfig:
    """Observability and logging configuration.

    Attributes:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        log_format: Log format (json, text)
    """

    log_level: str = "INFO"
    log_format: str = "json"

    @classmethod
    def from_env(cls) -> ObservabilityConfig:
        """Load configuration from environment variables."""
        return cls(
            log_level=os.getenv("LOG_LEVEL", "INFO"),
            log_format=os.getenv("LOG_FORMAT", "json"),
        )


@dataclass
class ServerConfig:
    """Complete server configuration.

    This aggregates all configuration sections and provides validation.

    Attributes:
        backend: Which persistence backend to use
        dynamodb: DynamoDB configuration (if backend is AWS)
        s3: S3 configuration (if backend is AWS)
        sns: SNS notification configuration
        deployment: Deployment orchestrator configuration
        http: HTTP API configuration
        lifecycle: Background loop configuration
        planner: Migration planner configuration
        observability: Observability configuration
    """

    backend: StoreBackend = StoreBackend.AWS
    dynamodb: DynamoDbConfig = field(default_factory=DynamoDbConfig)
    s3: S3Config = field(default_factory=S3Config)
    sns: SnsConfig = field(default_factory=SnsConfig)
    deployment: DeploymentConfig = field(default_factory=DeploymentConfig)
    http: HttpConfig = field(default_factory=HttpConfig)
    lifecycle: LifecycleConfig = field(default_factory=LifecycleConfig)
    planner: PlannerConfig = field(default_factory=PlannerConfig)
    observability: ObservabilityConfig = field(default_factory=ObservabilityConfig)

    @classmethod
    def from_env(cls) -> ServerConfig:
        """Load complete configuration from environment variables.

        Returns:
            ServerConfig with all sections populated from environment.

        Raises:
            ValueError: If required configuration is missing or invalid.
        """
        backend_str = os.getenv("STORE_BACKEND", "aws").lower()
        try:
            backend = StoreBackend(backend_str)
        except ValueError:
            raise ValueError(f"Invalid STORE_BACKEND '{backend_str}'. Must be one of: aws, memory")

        config = cls(
            backend=backend,
            dynamodb=DynamoDbConfig.from_env(),
            s3=S3Config.from_env(),
            sns=SnsConfig.from_env(),
            deployment=DeploymentConfig.from_env(),
            http=HttpConfig.from_env(),
            lifecycle=LifecycleConfig.from_env(),
            planner=PlannerConfig.from_env(),
            observability=ObservabilityConfig.from_env(),
        )

        config.validate()
        return config

    def validate(self) -> None:
        """Validate configuration consistency.

        Raises:
            ValueError: If configuration is invalid.
        """
        if self.backend == StoreBackend.AWS:
            if not self.dynamodb.table_prefix:
                raise ValueError("DYNAMODB_TABLE_PREFIX is required when STORE_BACKEND=aws")
            if not self.s3.bucket:
                raise ValueError("AWS_S3_BUCKET is required when STORE_BACKEND=aws")

        if self.sns.enabled and not self.sns.topic_arn:
            raise ValueError("SNS_LIFECYCLE_TOPIC_ARN is required when SNS_ENABLED=true")

        if self.lifecycle.sweep_interval_seconds <= 0:
            raise ValueError("SWEEP_INTERVAL_SECONDS must be positive")

        if not self.http.cors_origins:
            logger.warning("HTTP_CORS_ORIGINS is empty; browser clients will be rejected")

    def log_config(self) -> None:
        """Log configuration (redacting secrets)."""
        aws = self.backend == StoreBackend.AWS
        logger.info(
            "Server configuration loaded",
            extra={
                "backend": self.backend.value,
                "table_prefix": self.dynamodb.table_prefix if aws else None,
                "s3_bucket": self.s3.bucket if aws else None,
                "sns_enabled": self.sns.enabled,
                "deployment_webhook": bool(self.deployment.webhook_url),
                "http_bind": f"{self.http.host}:{self.http.port}",
                "sweeper_enabled": self.lifecycle.sweeper_enabled,
                "log_level": self.observability.log_level,
            },
        )
