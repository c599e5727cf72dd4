"""
Tests for configuration loading.
"""

import pytest
from pydantic import ValidationError as PydanticValidationError

from message_publisher.config import AppConfig, KafkaConfig, load_config


def test_defaults_without_file(clean_env, tmp_path):
    config = load_config(str(tmp_path / "missing.yml"))

    assert config.app.environment == "development"
    assert config.server.port == 4000
    assert config.kafka.brokers is None
    assert config.kafka.bootstrap_servers == ["localhost:9092"]
    assert config.kafka.topic == "messages"
    assert config.kafka.consumer_group == "message-publisher-workers"
    assert config.aws.region == "ap-southeast-1"
    assert config.sns.poll_interval_ms == 10000
    assert config.sqs.poll_interval_ms == 5000
    assert config.sns.topic_arn is None
    assert config.sqs.queue_url is None


def test_yaml_file_is_loaded(clean_env, tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text(
        "server:\n"
        "  port: 8081\n"
        "kafka:\n"
        "  brokers: [\"kafka-1:9092\", \"kafka-2:9092\"]\n"
        "  topic: events\n"
        "sqs:\n"
        "  queue_url: https://sqs.local/queue\n",
        encoding="utf-8"
    )

    config = load_config(str(config_file))

    assert config.server.port == 8081
    assert config.kafka.brokers == ["kafka-1:9092", "kafka-2:9092"]
    assert config.kafka.topic == "events"
    assert config.sqs.queue_url == "https://sqs.local/queue"


def test_config_path_env_var(clean_env, tmp_path):
    config_file = tmp_path / "custom.yml"
    config_file.write_text("kafka:\n  topic: from-env-path\n", encoding="utf-8")
    clean_env.setenv("CONFIG_PATH", str(config_file))

    config = load_config()

    assert config.kafka.topic == "from-env-path"


def test_env_overrides_file(clean_env, tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text("server:\n  port: 8081\n", encoding="utf-8")

    clean_env.setenv("PORT", "5000")
    clean_env.setenv("APP_ENV", "Production")
    clean_env.setenv("KAFKA_BROKERS", "a:9092, b:9092")
    clean_env.setenv("KAFKA_AUTO_CREATE_TOPIC", "true")
    clean_env.setenv("SNS_TOPIC_ARN", "arn:aws:sns:eu-west-1:1:topic")
    clean_env.setenv("SQS_POLL_INTERVAL", "2500")
    clean_env.setenv("LOG_JSON", "false")
    clean_env.setenv("LOG_LEVEL", "debug")

    config = load_config(str(config_file))

    assert config.server.port == 5000
    assert config.app.environment == "production"
    assert not config.app.is_development
    assert config.kafka.brokers == ["a:9092", "b:9092"]
    assert config.kafka.auto_create_topic is True
    assert config.sns.topic_arn == "arn:aws:sns:eu-west-1:1:topic"
    assert config.sqs.poll_interval_ms == 2500
    assert config.logging.json_format is False
    assert config.logging.level == "DEBUG"


def test_empty_topic_arn_counts_as_unset(clean_env, tmp_path):
    clean_env.setenv("SNS_TOPIC_ARN", "")

    config = load_config(str(tmp_path / "missing.yml"))

    assert config.sns.topic_arn is None


def test_invalid_yaml_raises_value_error(clean_env, tmp_path):
    config_file = tmp_path / "config.yml"
    config_file.write_text("kafka: [unclosed\n", encoding="utf-8")

    with pytest.raises(ValueError, match="Invalid YAML config"):
        load_config(str(config_file))


def test_unknown_keys_are_rejected():
    with pytest.raises(PydanticValidationError):
        AppConfig(kafka={"topics": "typo"})


def test_empty_broker_list_counts_as_unset():
    assert KafkaConfig(brokers="").brokers is None
    assert KafkaConfig(brokers=" , ").brokers is None
    assert KafkaConfig(brokers=[]).bootstrap_servers == ["localhost:9092"]


def test_empty_brokers_env_is_reported_missing(clean_env, tmp_path):
    clean_env.setenv("KAFKA_BROKERS", "")
    clean_env.setenv("SNS_TOPIC_ARN", "arn:aws:sns:eu-west-1:1:topic")
    clean_env.setenv("SQS_QUEUE_URL", "https://sqs.local/queue")

    config = load_config(str(tmp_path / "missing.yml"))

    assert config.kafka.brokers is None
    assert config.missing_required() == ["KAFKA_BROKERS"]


def test_invalid_log_level_is_rejected():
    with pytest.raises(PydanticValidationError):
        AppConfig(logging={"level": "LOUD"})


def test_missing_required_lists_unset_settings():
    config = AppConfig()

    assert config.missing_required() == ["KAFKA_BROKERS", "SNS_TOPIC_ARN", "SQS_QUEUE_URL"]


def test_missing_required_empty_when_complete(app_config):
    assert app_config.missing_required() == []


def test_sasl_requires_both_credentials():
    assert not KafkaConfig(sasl_username="user").uses_sasl
    assert KafkaConfig(sasl_username="user", sasl_password="secret").uses_sasl
