# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from json import JSONDecodeError, load
from typing import Any, Final, NamedTuple

# 3p
from aiohttp import ClientError, ClientSession
from azure.mgmt.resource.resources.models import DeploymentMode, DeploymentProperties, ParametersLink, TemplateLink
from jsonschema import ValidationError, validate

# project
from rg_deployer.settings.deployment_config import is_url
from rg_deployer.tasks.run_state import TemplateFileError

ARM_TEMPLATE_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "required": ["resources"],
}

ARM_PARAMETERS_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "additionalProperties": {
        "type": "object",
        "anyOf": [{"required": ["value"]}, {"required": ["reference"]}],
    },
}

POLICY_RULE_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "required": ["if", "then"],
}

POLICY_PARAMETERS_SCHEMA: Final[dict[str, Any]] = {
    "type": "object",
    "additionalProperties": {"type": "object", "required": ["type"]},
}


class PolicyFiles(NamedTuple):
    rule: dict[str, Any]
    parameters: dict[str, Any]


def read_json_file(path: str) -> Any:
    try:
        with open(path) as f:
            return load(f)
    except OSError as e:
        raise TemplateFileError(f"Unable to read {path}: {e}") from e
    except JSONDecodeError as e:
        raise TemplateFileError(f"{path} is not valid JSON: {e}") from e


async def fetch_json(session: ClientSession, url: str) -> Any:
    try:
        async with session.get(url) as resp:
            resp.raise_for_status()
            return await resp.json(content_type=None)
    except (ClientError, JSONDecodeError) as e:
        raise TemplateFileError(f"Unable to download {url}: {e}") from e


async def read_json(session: ClientSession, reference: str) -> Any:
    """Load a JSON document from a local path or an http(s) URL"""
    if is_url(reference):
        return await fetch_json(session, reference)
    return read_json_file(reference)


def check_schema(document: Any, schema: dict[str, Any], reference: str, kind: str) -> None:
    try:
        validate(instance=document, schema=schema)
    except ValidationError as e:
        raise TemplateFileError(f"Invalid {kind} in {reference}: {e.message}") from e


def unwrap(document: Any, key: str) -> Any:
    """Strip the `properties` and `key` wrappers the portal and ARM exports put around a document"""
    if isinstance(document, dict) and isinstance(document.get("properties"), dict):
        document = document["properties"]
    if isinstance(document, dict) and isinstance(document.get(key), dict):
        document = document[key]
    return document


def unwrap_deployment_parameters(document: Any, reference: str) -> dict[str, Any]:
    # a full parameter file carries $schema and contentVersion next to the parameters
    if isinstance(document, dict) and ("$schema" in document or "contentVersion" in document):
        document = document.get("parameters", {})
    check_schema(document, ARM_PARAMETERS_SCHEMA, reference, "deployment parameters")
    return document


def build_deployment_properties(template_file: str, template_parameter_file: str) -> DeploymentProperties:
    """Deployment properties for an incremental deployment, URLs are passed to ARM as links"""
    properties = DeploymentProperties(mode=DeploymentMode.INCREMENTAL)
    if is_url(template_file):
        properties.template_link = TemplateLink(uri=template_file)
    else:
        template = read_json_file(template_file)
        check_schema(template, ARM_TEMPLATE_SCHEMA, template_file, "ARM template")
        properties.template = template
    if is_url(template_parameter_file):
        properties.parameters_link = ParametersLink(uri=template_parameter_file)
    else:
        properties.parameters = unwrap_deployment_parameters(
            read_json_file(template_parameter_file), template_parameter_file
        )
    return properties


async def load_policy_files(
    session: ClientSession, policy_template_file: str, policy_template_parameter_file: str
) -> PolicyFiles:
    rule = unwrap(await read_json(session, policy_template_file), "policyRule")
    check_schema(rule, POLICY_RULE_SCHEMA, policy_template_file, "policy rule")
    parameters = unwrap(await read_json(session, policy_template_parameter_file), "parameters")
    check_schema(parameters, POLICY_PARAMETERS_SCHEMA, policy_template_parameter_file, "policy parameters")
    return PolicyFiles(rule, parameters)
