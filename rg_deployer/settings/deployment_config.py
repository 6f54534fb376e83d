# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Mapping
from dataclasses import dataclass
from os import environ
from pathlib import Path
from typing import Any, Final
from urllib.parse import urlparse

# 3p
from jsonschema import ValidationError, validate
from yaml import YAMLError, safe_load

# project
from rg_deployer.settings.env import (
    DEPLOYMENT_NAME_SETTING,
    LOCATION_SETTING,
    POLICY_TEMPLATE_FILE_SETTING,
    POLICY_TEMPLATE_PARAMETER_FILE_SETTING,
    RESOURCE_GROUP_NAME_SETTING,
    SUBSCRIPTION_ID_SETTING,
    TEMPLATE_FILE_SETTING,
    TEMPLATE_PARAMETER_FILE_SETTING,
    MissingConfigOptionError,
)

DEFAULT_LOCATION: Final = "West Europe"
DEFAULT_ALLOWED_PROVIDER_NAMESPACES: Final = ("Microsoft.Compute", "Microsoft.Storage")

# (field name, config file key, environment setting)
CONFIG_FIELDS: Final = (
    ("resource_group_name", "resourceGroupName", RESOURCE_GROUP_NAME_SETTING),
    ("deployment_name", "deploymentName", DEPLOYMENT_NAME_SETTING),
    ("template_file", "templateFile", TEMPLATE_FILE_SETTING),
    ("template_parameter_file", "templateParameterFile", TEMPLATE_PARAMETER_FILE_SETTING),
    ("policy_template_file", "policyTemplateFile", POLICY_TEMPLATE_FILE_SETTING),
    ("policy_template_parameter_file", "policyTemplateParameterFile", POLICY_TEMPLATE_PARAMETER_FILE_SETTING),
    ("location", "location", LOCATION_SETTING),
    ("subscription_id", "subscriptionId", SUBSCRIPTION_ID_SETTING),
)
OPTIONAL_FIELDS: Final = frozenset({"location", "subscription_id"})
PATH_FIELDS: Final = frozenset(
    {"template_file", "template_parameter_file", "policy_template_file", "policy_template_parameter_file"}
)
NAMESPACES_KEY: Final = "allowedProviderNamespaces"

CONFIG_FILE_SCHEMA: dict[str, Any] = {
    "type": "object",
    "properties": {
        **{key: {"type": "string", "minLength": 1} for _, key, _ in CONFIG_FIELDS},
        NAMESPACES_KEY: {"type": "array", "items": {"type": "string", "minLength": 1}, "minItems": 1},
    },
    "additionalProperties": False,
}

CONFIG_TEMPLATE = """# Resource group deployment configuration
# Run the deployer with: rg-deploy --config <this file>
# Relative file paths are resolved against the folder containing this file.

# Resource group to create or reuse
resourceGroupName: "my-resource-group"
# Region used when the resource group has to be created
location: "West Europe"
# Name of the ARM deployment
deploymentName: "my-deployment"

# ARM template and its parameter file (local paths or https URLs)
templateFile: "azuredeploy.json"
templateParameterFile: "azuredeploy.parameters.json"

# Allowed resource types policy rule and parameter schema
policyTemplateFile: "policy.rules.json"
policyTemplateParameterFile: "policy.parameters.json"

# Subscription to deploy into (optional, prompts when several are available)
# subscriptionId: ""

# Provider namespaces whose resource types are allowed by the policy
allowedProviderNamespaces:
  - "Microsoft.Compute"
  - "Microsoft.Storage"
"""


class InvalidConfigError(Exception):
    pass


@dataclass(frozen=True)
class DeploymentConfig:
    resource_group_name: str
    deployment_name: str
    template_file: str
    template_parameter_file: str
    policy_template_file: str
    policy_template_parameter_file: str
    location: str = DEFAULT_LOCATION
    subscription_id: str | None = None
    allowed_provider_namespaces: tuple[str, ...] = DEFAULT_ALLOWED_PROVIDER_NAMESPACES


def is_url(reference: str) -> bool:
    return urlparse(reference).scheme.lower() in {"http", "https"}


def load_config_file(path: str) -> dict[str, Any]:
    """Read a YAML configuration file, returning its values keyed by `DeploymentConfig` field name"""
    try:
        with open(path) as f:
            raw = safe_load(f)
    except OSError as e:
        raise InvalidConfigError(f"Unable to read configuration file {path}: {e}") from e
    except YAMLError as e:
        raise InvalidConfigError(f"Configuration file {path} is not valid YAML: {e}") from e
    try:
        validate(instance=raw, schema=CONFIG_FILE_SCHEMA)
    except ValidationError as e:
        raise InvalidConfigError(f"Invalid configuration file {path}: {e.message}") from e

    base_dir = Path(path).parent
    values: dict[str, Any] = {}
    for field_name, key, _ in CONFIG_FIELDS:
        value = raw.get(key)
        if value is None:
            continue
        if field_name in PATH_FIELDS and not is_url(value):
            value = str(base_dir / value)
        values[field_name] = value
    if NAMESPACES_KEY in raw:
        values["allowed_provider_namespaces"] = tuple(raw[NAMESPACES_KEY])
    return values


def build_config(overrides: Mapping[str, Any], file_values: Mapping[str, Any] | None = None) -> DeploymentConfig:
    """Combine command line values, config file values and the environment into a `DeploymentConfig`.
    The first source that provides a field wins, in that order."""
    file_values = file_values or {}
    values: dict[str, Any] = {}
    for field_name, key, setting in CONFIG_FIELDS:
        value = overrides.get(field_name) or file_values.get(field_name) or environ.get(setting)
        if value:
            values[field_name] = value
        elif field_name not in OPTIONAL_FIELDS:
            raise MissingConfigOptionError(key)
    if namespaces := overrides.get("allowed_provider_namespaces") or file_values.get("allowed_provider_namespaces"):
        values["allowed_provider_namespaces"] = tuple(namespaces)
    return DeploymentConfig(**values)


def write_sample_config(path: str) -> None:
    with open(path, "w") as f:
        f.write(CONFIG_TEMPLATE)
