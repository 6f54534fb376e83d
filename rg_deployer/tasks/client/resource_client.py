# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Iterable, Mapping
from contextlib import AbstractAsyncContextManager
from json import dumps
from logging import Logger
from types import TracebackType
from typing import Any, Self

# 3p
from azure.core.exceptions import AzureError
from azure.identity.aio import DefaultAzureCredential
from azure.mgmt.resource.resources.aio import ResourceManagementClient
from azure.mgmt.resource.resources.models import (
    Deployment,
    DeploymentExtended,
    DeploymentProperties,
    ResourceGroup,
    ResourceGroupPatchable,
)

# project
from rg_deployer.tasks.common import DEFAULT_TAGS, merge_tags, qualified_resource_types
from rg_deployer.tasks.run_state import (
    DeploymentFailedError,
    ProviderRegistrationError,
    ResourceGroupError,
    TagUpdateError,
    TemplateValidationError,
)

SUCCEEDED_STATE = "Succeeded"


def error_messages(error: Any) -> list[str]:
    """Flatten an ARM error and its nested details into `code: message` lines, depth first"""
    if error is None:
        return []
    messages = [f"{error.code}: {error.message}"]
    for detail in getattr(error, "details", None) or []:
        messages.extend(error_messages(detail))
    return messages


class ResourceClient(AbstractAsyncContextManager["ResourceClient"]):
    def __init__(self, log: Logger, cred: DefaultAzureCredential, subscription_id: str) -> None:
        super().__init__()
        self.log = log
        self.subscription_id = subscription_id
        self.resources_client = ResourceManagementClient(cred, subscription_id)

    async def __aenter__(self) -> Self:
        await self.resources_client.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        await self.resources_client.__aexit__(exc_type, exc_val, exc_tb)

    async def ensure_resource_group(self, name: str, location: str) -> ResourceGroup:
        """Return the resource group, creating it in `location` only if it does not exist yet"""
        try:
            if await self.resources_client.resource_groups.check_existence(name):
                resource_group = await self.resources_client.resource_groups.get(name)
                self.log.info("Using existing resource group %s in %s", name, resource_group.location)
                return resource_group
            self.log.info("Creating resource group %s in %s", name, location)
            return await self.resources_client.resource_groups.create_or_update(name, ResourceGroup(location=location))
        except AzureError as e:
            raise ResourceGroupError(f"Failed to get or create resource group {name}: {e.message}") from e

    async def set_default_tags(
        self, resource_group: ResourceGroup, default_tags: Mapping[str, str] = DEFAULT_TAGS
    ) -> dict[str, str]:
        existing = resource_group.tags or {}
        tags = merge_tags(existing, default_tags)
        if tags == existing:
            self.log.info("Resource group %s already has the default tags", resource_group.name)
            return tags
        self.log.info("Setting tags on resource group %s: %s", resource_group.name, tags)
        try:
            await self.resources_client.resource_groups.update(resource_group.name, ResourceGroupPatchable(tags=tags))
        except AzureError as e:
            raise TagUpdateError(f"Failed to tag resource group {resource_group.name}: {e.message}") from e
        return tags

    async def validate_deployment(
        self, resource_group_name: str, deployment_name: str, properties: DeploymentProperties
    ) -> None:
        self.log.info("Validating deployment %s against resource group %s", deployment_name, resource_group_name)
        try:
            poller = await self.resources_client.deployments.begin_validate(
                resource_group_name, deployment_name, Deployment(properties=properties)
            )
            result = await poller.result()
        except AzureError as e:
            errors = error_messages(getattr(e, "error", None)) or [str(e.message)]
            raise TemplateValidationError(f"Template validation failed for {deployment_name}", errors) from e
        if errors := error_messages(result.error):
            raise TemplateValidationError(f"Template validation failed for {deployment_name}", errors)

    async def deploy(
        self, resource_group_name: str, deployment_name: str, properties: DeploymentProperties
    ) -> DeploymentExtended:
        self.log.info("Deploying %s to resource group %s", deployment_name, resource_group_name)
        try:
            poller = await self.resources_client.deployments.begin_create_or_update(
                resource_group_name, deployment_name, Deployment(properties=properties)
            )
            deployment = await poller.result()
        except AzureError as e:
            raise DeploymentFailedError(f"Deployment {deployment_name} failed: {e.message}") from e
        state = deployment.properties.provisioning_state if deployment.properties else None
        if state != SUCCEEDED_STATE:
            raise DeploymentFailedError(f"Deployment {deployment_name} finished in state {state}")
        if outputs := deployment.properties.outputs:
            self.log.info("Deployment %s outputs: %s", deployment_name, dumps(outputs, default=str))
        return deployment

    async def register_provider(self, namespace: str) -> None:
        self.log.info("Registering resource provider %s", namespace)
        try:
            await self.resources_client.providers.register(namespace)
        except AzureError as e:
            raise ProviderRegistrationError(f"Failed to register resource provider {namespace}: {e.message}") from e

    async def list_resource_types(self, namespaces: Iterable[str]) -> list[str]:
        """Fully qualified resource type names of every namespace, in enumeration order"""
        resource_types: list[str] = []
        for namespace in namespaces:
            try:
                provider = await self.resources_client.providers.get(namespace)
            except AzureError as e:
                raise ProviderRegistrationError(f"Failed to read resource provider {namespace}: {e.message}") from e
            type_names = [rt.resource_type for rt in provider.resource_types or [] if rt.resource_type]
            resource_types.extend(qualified_resource_types(namespace, type_names))
        self.log.info("Collected %s allowed resource types", len(resource_types))
        return resource_types
