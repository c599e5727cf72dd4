"""
Configuration management for message-publisher.
Loads and validates configuration from YAML files using Pydantic,
with environment variables taking precedence.
"""

import os
import logging
from pathlib import Path
from typing import List, Optional

import yaml
from pydantic import BaseModel, Field, validator, ConfigDict


logger = logging.getLogger(__name__)

# Used when KAFKA_BROKERS is not set
DEFAULT_BROKERS = ["localhost:9092"]


class AppSettings(BaseModel):
    """General application settings."""
    model_config = ConfigDict(extra='forbid')

    environment: str = Field(
        default="development",
        description="Deployment environment: development or production"
    )
    service_name: str = Field(
        default="Message Publisher API",
        description="Service name reported by health endpoints"
    )

    @validator('environment')
    def validate_environment(cls, v):
        return v.lower()

    @property
    def is_development(self) -> bool:
        return self.environment == "development"


class ServerConfig(BaseModel):
    """HTTP server configuration."""
    model_config = ConfigDict(extra='forbid')

    host: str = Field(
        default="0.0.0.0",
        description="Host to bind to"
    )
    port: int = Field(
        default=4000,
        ge=1,
        le=65535,
        description="Port to bind to"
    )
    log_level: str = Field(
        default="info",
        description="Uvicorn log level"
    )

    @validator('log_level')
    def validate_log_level(cls, v):
        valid_levels = ['critical', 'error', 'warning', 'info', 'debug', 'trace']
        if v.lower() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.lower()


class KafkaConfig(BaseModel):
    """Kafka broker, producer and consumer configuration."""
    model_config = ConfigDict(extra='forbid')

    brokers: Optional[List[str]] = Field(
        default=None,
        description="Bootstrap servers, localhost:9092 is used when unset"
    )
    topic: str = Field(
        default="messages",
        description="Topic messages are published to and consumed from"
    )
    client_id: str = Field(
        default="message-publisher-api",
        description="Client id used by the producer"
    )
    worker_client_id: str = Field(
        default="message-publisher-kafka-worker",
        description="Client id used by the consumer worker"
    )
    consumer_group: str = Field(
        default="message-publisher-workers",
        description="Consumer group of the Kafka worker"
    )
    sasl_username: Optional[str] = Field(default=None, description="SASL PLAIN username")
    sasl_password: Optional[str] = Field(default=None, description="SASL PLAIN password")
    auto_create_topic: bool = Field(
        default=False,
        description="Create the topic at API startup when missing"
    )
    topic_partitions: int = Field(default=3, ge=1, le=1000)
    topic_replication_factor: int = Field(default=1, ge=1, le=10)
    batch_size: int = Field(
        default=100,
        ge=1,
        le=10000,
        description="Max records fetched per worker poll"
    )
    poll_timeout_ms: int = Field(
        default=1000,
        ge=100,
        le=60000,
        description="How long a worker poll waits for records"
    )
    session_timeout_ms: int = Field(default=30000, ge=1000)
    heartbeat_interval_ms: int = Field(default=3000, ge=100)

    @validator('brokers', pre=True)
    def split_brokers(cls, v):
        if isinstance(v, str):
            v = [broker.strip() for broker in v.split(',') if broker.strip()]
        return v or None

    @property
    def bootstrap_servers(self) -> List[str]:
        return self.brokers or DEFAULT_BROKERS

    @property
    def uses_sasl(self) -> bool:
        return bool(self.sasl_username and self.sasl_password)


class AWSConfig(BaseModel):
    """AWS session configuration shared by SNS and SQS."""
    model_config = ConfigDict(extra='forbid')

    region: Optional[str] = Field(
        default="ap-southeast-1",
        description="AWS region for SNS and SQS"
    )
    access_key_id: Optional[str] = Field(default=None, description="Static access key")
    secret_access_key: Optional[str] = Field(default=None, description="Static secret key")
    endpoint_url: Optional[str] = Field(
        default=None,
        description="Endpoint override, e.g. LocalStack"
    )

    @property
    def has_static_credentials(self) -> bool:
        return bool(self.access_key_id and self.secret_access_key)


class SNSConfig(BaseModel):
    """SNS topic configuration."""
    model_config = ConfigDict(extra='forbid')

    topic_arn: Optional[str] = Field(default=None, description="Topic to publish to")
    subscription_queue_url: Optional[str] = Field(
        default=None,
        description="SQS queue subscribed to the topic, read by the SNS worker"
    )
    poll_interval_ms: int = Field(default=10000, ge=0, le=3600000)

    @validator('topic_arn', 'subscription_queue_url')
    def empty_as_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class SQSConfig(BaseModel):
    """SQS queue configuration."""
    model_config = ConfigDict(extra='forbid')

    queue_url: Optional[str] = Field(default=None, description="Queue to send to and poll")
    poll_interval_ms: int = Field(default=5000, ge=0, le=3600000)
    max_messages: int = Field(default=10, ge=1, le=10, description="Messages per receive call")
    wait_time_seconds: int = Field(default=10, ge=0, le=20, description="Long poll wait")

    @validator('queue_url')
    def empty_as_none(cls, v):
        if v is not None and not v.strip():
            return None
        return v


class WorkersConfig(BaseModel):
    """Settings shared by all consumer workers."""
    model_config = ConfigDict(extra='forbid')

    status_interval_seconds: int = Field(
        default=30,
        ge=0,
        description="Period of the worker status log line, 0 disables it"
    )
    history_size: int = Field(default=100, ge=0, le=10000)


class LoggingConfig(BaseModel):
    """Logging configuration."""
    model_config = ConfigDict(extra='forbid')

    level: str = Field(
        default="INFO",
        description="Logging level"
    )
    json_format: bool = Field(
        default=True,
        description="Enable JSON log formatting"
    )
    enable_correlation: bool = Field(
        default=True,
        description="Enable correlation IDs in logs"
    )

    @validator('level')
    def validate_log_level(cls, v):
        valid_levels = ['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL']
        if v.upper() not in valid_levels:
            raise ValueError(f"Invalid log level. Must be one of: {valid_levels}")
        return v.upper()


class AppConfig(BaseModel):
    """Main application configuration."""
    model_config = ConfigDict(extra='forbid')

    app: AppSettings = Field(default_factory=AppSettings)
    server: ServerConfig = Field(default_factory=ServerConfig)
    kafka: KafkaConfig = Field(default_factory=KafkaConfig)
    aws: AWSConfig = Field(default_factory=AWSConfig)
    sns: SNSConfig = Field(default_factory=SNSConfig)
    sqs: SQSConfig = Field(default_factory=SQSConfig)
    workers: WorkersConfig = Field(default_factory=WorkersConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    def missing_required(self) -> List[str]:
        """Names of the required settings that are not set."""
        required = {
            'AWS_REGION': self.aws.region,
            'KAFKA_BROKERS': self.kafka.brokers,
            'SNS_TOPIC_ARN': self.sns.topic_arn,
            'SQS_QUEUE_URL': self.sqs.queue_url,
        }
        return [name for name, value in required.items() if not value]


# Environment variable mappings
ENV_MAPPINGS = {
    'APP_ENV': 'app.environment',
    'HOST': 'server.host',
    'PORT': 'server.port',
    'SERVER_LOG_LEVEL': 'server.log_level',
    'KAFKA_BROKERS': 'kafka.brokers',
    'KAFKA_TOPIC': 'kafka.topic',
    'KAFKA_CLIENT_ID': 'kafka.client_id',
    'KAFKA_CONSUMER_GROUP': 'kafka.consumer_group',
    'KAFKA_SASL_USERNAME': 'kafka.sasl_username',
    'KAFKA_SASL_PASSWORD': 'kafka.sasl_password',
    'KAFKA_AUTO_CREATE_TOPIC': 'kafka.auto_create_topic',
    'AWS_REGION': 'aws.region',
    'AWS_ACCESS_KEY_ID': 'aws.access_key_id',
    'AWS_SECRET_ACCESS_KEY': 'aws.secret_access_key',
    'AWS_ENDPOINT_URL': 'aws.endpoint_url',
    'SNS_TOPIC_ARN': 'sns.topic_arn',
    'SNS_SUBSCRIPTION_QUEUE_URL': 'sns.subscription_queue_url',
    'SNS_POLL_INTERVAL': 'sns.poll_interval_ms',
    'SQS_QUEUE_URL': 'sqs.queue_url',
    'SQS_POLL_INTERVAL': 'sqs.poll_interval_ms',
    'WORKER_STATUS_INTERVAL': 'workers.status_interval_seconds',
    'LOG_LEVEL': 'logging.level',
    'LOG_JSON': 'logging.json_format',
}


def load_config(config_path: Optional[str] = None) -> AppConfig:
    """
    Load configuration from YAML file with environment variable overrides.

    Args:
        config_path: Path to config file, defaults to CONFIG_PATH env var or ./config.yml

    Returns:
        Loaded and validated configuration

    Raises:
        ValueError: If config validation fails or the YAML is malformed
    """
    if config_path is None:
        config_path = os.getenv('CONFIG_PATH', './config.yml')

    config_file = Path(config_path)
    yaml_data: dict = {}

    if config_file.exists():
        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                yaml_data = yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            logger.error(f"Failed to parse YAML config: {e}")
            raise ValueError(f"Invalid YAML config: {e}") from e

        logger.info(f"Loaded config from: {config_file}")
    else:
        logger.info(f"Config file not found: {config_file}, using defaults and environment")

    yaml_data = _apply_env_overrides(yaml_data)

    try:
        config = AppConfig(**yaml_data)
    except Exception as e:
        logger.error(f"Failed to load config: {e}")
        raise

    logger.info(
        "Configuration loaded successfully",
        extra={
            "component": "config",
            "config_file": str(config_file),
            "environment": config.app.environment,
            "kafka_brokers": ",".join(config.kafka.bootstrap_servers),
            "server_port": config.server.port
        }
    )

    return config


def _apply_env_overrides(config_data: dict) -> dict:
    """
    Apply environment variable overrides to config data.

    Values stay strings; pydantic coerces them to the field types.

    Args:
        config_data: Base configuration data

    Returns:
        Configuration data with environment overrides applied
    """
    for env_var, config_path in ENV_MAPPINGS.items():
        env_value = os.getenv(env_var)
        if env_value is not None:
            _set_nested_value(config_data, config_path, env_value)
            logger.debug(f"Applied env override: {env_var} -> {config_path}")

    return config_data


def _set_nested_value(data: dict, path: str, value: str) -> None:
    """
    Set a nested dictionary value using dot notation.

    Args:
        data: Dictionary to modify
        path: Dot-separated path (e.g., 'kafka.topic')
        value: Value to set
    """
    keys = path.split('.')
    current = data

    for key in keys[:-1]:
        if current.get(key) is None:
            current[key] = {}
        current = current[key]

    current[keys[-1]] = value
