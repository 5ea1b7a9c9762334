import logging
import os
from cerberus import Validator
import yaml

from .schemas import InvalidConfig

logger = logging.getLogger(__name__)

mqtt_schema = {
    "enable": {"type": "boolean", "required": True},
    "host": {"type": "string"},
    "port": {"type": "integer", "min": 1, "max": 65535},
    "topic": {"type": "string"},
    "auth": {
        "type": "dict",
        "required": False,  # Optional
        "schema": {
            "username": {"type": "string", "required": True},
            "password": {"type": "string", "required": True},
        },
    },
}

schema = {
    "input": {
        "type": "dict",
        "required": True,
        "schema": {
            "mqtt": {"type": "dict", "schema": mqtt_schema},
            "http": {
                "type": "dict",
                "schema": {
                    "enable": {"type": "boolean", "required": True},
                    "host": {"type": "string"},
                    "port": {"type": "integer", "min": 1, "max": 65535},
                },
            },
        },
    },
    "output": {
        "type": "dict",
        "required": True,
        "schema": {
            "mqtt": {"type": "dict", "schema": mqtt_schema},
            "http": {
                "type": "dict",
                "schema": {
                    "enable": {"type": "boolean", "required": True},
                    "url": {"type": "string"},
                },
            },
        },
    },
    "uplink": {
        "type": "dict",
        "required": True,
        "schema": {
            "lns": {"type": "string", "allowed": ["ttn", "loriot"], "required": True},
            "fports": {
                "type": "list",
                "default": [1],
                "schema": {"type": "integer", "min": 1, "max": 223},
            },
            "strict": {"type": "boolean", "default": False},
        },
    },
    "log": {
        "type": "dict",
        "required": True,
        "schema": {
            "level": {"type": "string", "allowed": ["debug", "info", "warning", "error", "critical"], "required": True},
        },
    },
}

# Additional check: Ensure at least one input type is enabled
def check_input_enabled(config):
    input_section = config.get("input", {})
    mqtt_enabled = input_section.get("mqtt", {}).get("enable", False)
    http_enabled = input_section.get("http", {}).get("enable", False)

    return mqtt_enabled or http_enabled


# Ensure at least one output type is enabled
def check_output_enabled(config):
    output_section = config.get("output", {})
    mqtt_enabled = output_section.get("mqtt", {}).get("enable", False)
    http_enabled = output_section.get("http", {}).get("enable", False)

    return mqtt_enabled or http_enabled


# Load YAML
def load_yaml_config(filename):
    with open(filename, "r") as file:
        return yaml.safe_load(file)


# Validate YAML, returns the normalized document (defaults filled) or None
def validate_config(config) -> dict | None:
    validator = Validator(schema) # type: ignore

    if not validator.validate(config): # type: ignore
        logger.error(f"Config validation failed: {validator.errors}") # type: ignore
        return None

    # Additional custom validation
    if not check_input_enabled(config):
        logger.error("Config validation failed! At least one input (MQTT or HTTP) must be enabled.")
        return None

    if not check_output_enabled(config):
        logger.error("Config validation failed! At least one output (MQTT or HTTP) must be enabled.")
        return None

    logger.debug("Config is valid")
    return validator.document # type: ignore


def config_filename() -> str:
    if os.getenv("ENV") == "dev":
        return "config_dev.yaml"
    return "config.yaml"


def export_config(config_file: str | None = None) -> dict:
    config = validate_config(load_yaml_config(config_file or config_filename()))
    if config is None:
        raise InvalidConfig
    return config


if __name__ == "__main__":
    print(export_config())
