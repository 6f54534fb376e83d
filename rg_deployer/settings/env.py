# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Callable
from logging import getLogger
from os import environ
from typing import TypeVar

T = TypeVar("T")

log = getLogger(__name__)


# Settings
RESOURCE_GROUP_NAME_SETTING = "RESOURCE_GROUP_NAME"
DEPLOYMENT_NAME_SETTING = "DEPLOYMENT_NAME"
TEMPLATE_FILE_SETTING = "TEMPLATE_FILE"
TEMPLATE_PARAMETER_FILE_SETTING = "TEMPLATE_PARAMETER_FILE"
POLICY_TEMPLATE_FILE_SETTING = "POLICY_TEMPLATE_FILE"
POLICY_TEMPLATE_PARAMETER_FILE_SETTING = "POLICY_TEMPLATE_PARAMETER_FILE"
LOCATION_SETTING = "LOCATION"
SUBSCRIPTION_ID_SETTING = "SUBSCRIPTION_ID"
LOG_LEVEL_SETTING = "LOG_LEVEL"

LOG_LEVELS = frozenset({"ERROR", "WARN", "WARNING", "INFO", "DEBUG"})


class MissingConfigOptionError(Exception):
    def __init__(self, option: str) -> None:
        super().__init__(f"Missing required configuration option: {option}")


def parse_config_option(name: str, parse: Callable[[str], T | None], default: T) -> T:
    """Get a configuration option from the environment, parse it, or return a default"""
    try:
        value = environ.get(name)
        if value is None:
            return default
        result = parse(value)
        if result is None:
            log.error(f"Invalid value for configuration option {name}: {value}")
            return default
        return result
    except ValueError:
        log.error(f"Invalid value for configuration option {name}: {environ.get(name)}")
        return default


def parse_log_level(value: str) -> str | None:
    level = value.strip().upper()
    return level if level in LOG_LEVELS else None
