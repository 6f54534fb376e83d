# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from os import path
from tempfile import TemporaryDirectory
from unittest import TestCase
from unittest.mock import patch

# 3p
from jsonschema import validate
from yaml import safe_load

# project
from rg_deployer.settings.deployment_config import (
    CONFIG_FILE_SCHEMA,
    CONFIG_TEMPLATE,
    DEFAULT_ALLOWED_PROVIDER_NAMESPACES,
    DEFAULT_LOCATION,
    DeploymentConfig,
    InvalidConfigError,
    build_config,
    is_url,
    load_config_file,
    write_sample_config,
)
from rg_deployer.settings.env import MissingConfigOptionError

CLI_VALUES = {
    "resource_group_name": "rg1",
    "deployment_name": "deploy1",
    "template_file": "template.json",
    "template_parameter_file": "template.parameters.json",
    "policy_template_file": "policy.json",
    "policy_template_parameter_file": "policy.parameters.json",
    "location": None,
    "subscription_id": None,
    "allowed_provider_namespaces": None,
}


class ConfigFileTestCase(TestCase):
    def setUp(self) -> None:
        tmp = TemporaryDirectory()
        self.addCleanup(tmp.cleanup)
        self.dir = tmp.name

    def write(self, name: str, content: str) -> str:
        file_path = path.join(self.dir, name)
        with open(file_path, "w") as f:
            f.write(content)
        return file_path


@patch.dict("rg_deployer.settings.deployment_config.environ", {}, clear=True)
class TestBuildConfig(TestCase):
    def test_cli_values_with_defaults(self):
        config = build_config(CLI_VALUES)
        self.assertEqual(
            config,
            DeploymentConfig(
                resource_group_name="rg1",
                deployment_name="deploy1",
                template_file="template.json",
                template_parameter_file="template.parameters.json",
                policy_template_file="policy.json",
                policy_template_parameter_file="policy.parameters.json",
            ),
        )
        self.assertEqual(config.location, "West Europe")
        self.assertEqual(config.location, DEFAULT_LOCATION)
        self.assertIsNone(config.subscription_id)
        self.assertEqual(config.allowed_provider_namespaces, ("Microsoft.Compute", "Microsoft.Storage"))

    def test_missing_required_value(self):
        with self.assertRaises(MissingConfigOptionError) as ctx:
            build_config({**CLI_VALUES, "deployment_name": None})
        self.assertEqual(str(ctx.exception), "Missing required configuration option: deploymentName")

    def test_cli_beats_file(self):
        config = build_config(CLI_VALUES, {"resource_group_name": "from-file", "location": "North Europe"})
        self.assertEqual(config.resource_group_name, "rg1")
        self.assertEqual(config.location, "North Europe")

    def test_file_beats_environment(self):
        with patch.dict("rg_deployer.settings.deployment_config.environ", {"LOCATION": "East US"}):
            self.assertEqual(build_config(CLI_VALUES, {"location": "North Europe"}).location, "North Europe")
            self.assertEqual(build_config(CLI_VALUES).location, "East US")

    def test_environment_only(self):
        env = {
            "RESOURCE_GROUP_NAME": "env-rg",
            "DEPLOYMENT_NAME": "env-deploy",
            "TEMPLATE_FILE": "https://example.com/template.json",
            "TEMPLATE_PARAMETER_FILE": "https://example.com/template.parameters.json",
            "POLICY_TEMPLATE_FILE": "policy.json",
            "POLICY_TEMPLATE_PARAMETER_FILE": "policy.parameters.json",
            "SUBSCRIPTION_ID": "sub1",
        }
        with patch.dict("rg_deployer.settings.deployment_config.environ", env):
            config = build_config({})
        self.assertEqual(config.resource_group_name, "env-rg")
        self.assertEqual(config.template_file, "https://example.com/template.json")
        self.assertEqual(config.subscription_id, "sub1")

    def test_namespaces_override(self):
        config = build_config({**CLI_VALUES, "allowed_provider_namespaces": ["Microsoft.Web"]})
        self.assertEqual(config.allowed_provider_namespaces, ("Microsoft.Web",))


class TestLoadConfigFile(ConfigFileTestCase):
    def test_hardcoded_variant(self):
        config_path = self.write(
            "deploy.yaml",
            """
resourceGroupName: rg1
deploymentName: deploy1
templateFile: templates/azuredeploy.json
templateParameterFile: https://example.com/azuredeploy.parameters.json
policyTemplateFile: /abs/policy.json
policyTemplateParameterFile: policy.parameters.json
location: North Europe
allowedProviderNamespaces: [Microsoft.Compute]
""",
        )
        values = load_config_file(config_path)
        self.assertEqual(
            values,
            {
                "resource_group_name": "rg1",
                "deployment_name": "deploy1",
                "template_file": path.join(self.dir, "templates/azuredeploy.json"),
                "template_parameter_file": "https://example.com/azuredeploy.parameters.json",
                "policy_template_file": "/abs/policy.json",
                "policy_template_parameter_file": path.join(self.dir, "policy.parameters.json"),
                "location": "North Europe",
                "allowed_provider_namespaces": ("Microsoft.Compute",),
            },
        )
        with patch.dict("rg_deployer.settings.deployment_config.environ", {}, clear=True):
            config = build_config({}, values)
        self.assertEqual(config.allowed_provider_namespaces, ("Microsoft.Compute",))

    def test_unknown_key(self):
        config_path = self.write("deploy.yaml", "resourceGroup: rg1\n")
        with self.assertRaises(InvalidConfigError):
            load_config_file(config_path)

    def test_wrong_type(self):
        config_path = self.write("deploy.yaml", "resourceGroupName: [rg1]\n")
        with self.assertRaises(InvalidConfigError):
            load_config_file(config_path)

    def test_empty_file(self):
        with self.assertRaises(InvalidConfigError):
            load_config_file(self.write("deploy.yaml", ""))

    def test_invalid_yaml(self):
        with self.assertRaises(InvalidConfigError):
            load_config_file(self.write("deploy.yaml", "resourceGroupName: 'rg1\n  deploymentName: : :"))

    def test_missing_file(self):
        with self.assertRaises(InvalidConfigError) as ctx:
            load_config_file(path.join(self.dir, "nope.yaml"))
        self.assertIn("Unable to read configuration file", str(ctx.exception))


class TestSampleConfig(ConfigFileTestCase):
    def test_sample_config_is_valid(self):
        validate(instance=safe_load(CONFIG_TEMPLATE), schema=CONFIG_FILE_SCHEMA)

    def test_write_sample_config(self):
        output = path.join(self.dir, "sample.yaml")
        write_sample_config(output)
        values = load_config_file(output)
        self.assertEqual(values["resource_group_name"], "my-resource-group")
        self.assertEqual(values["allowed_provider_namespaces"], DEFAULT_ALLOWED_PROVIDER_NAMESPACES)


class TestIsUrl(TestCase):
    def test_is_url(self):
        self.assertTrue(is_url("https://example.com/template.json"))
        self.assertTrue(is_url("HTTP://example.com/template.json"))
        self.assertFalse(is_url("template.json"))
        self.assertFalse(is_url("/abs/template.json"))
        self.assertFalse(is_url("C:\\templates\\template.json"))
