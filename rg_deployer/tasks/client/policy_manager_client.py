# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from contextlib import AbstractAsyncContextManager
from logging import Logger
from types import TracebackType
from typing import Final, Self

# 3p
from azure.core.exceptions import AzureError, DeserializationError, ResourceNotFoundError
from azure.identity.aio import DefaultAzureCredential
from azure.mgmt.resource.policy.aio import PolicyClient
from azure.mgmt.resource.policy.models import (
    ParameterDefinitionsValue,
    ParameterValuesValue,
    PolicyAssignment,
    PolicyDefinition,
    PolicyType,
)

# project
from rg_deployer.tasks.client.template_files import PolicyFiles
from rg_deployer.tasks.common import ALLOWED_TYPES_PARAMETER
from rg_deployer.tasks.run_state import PolicyAssignmentError, PolicyUpsertOutcome

POLICY_MODE: Final = "All"


class PolicyManagerClient(AbstractAsyncContextManager["PolicyManagerClient"]):
    def __init__(self, log: Logger, cred: DefaultAzureCredential, subscription_id: str) -> None:
        super().__init__()
        self.log = log
        self.subscription_id = subscription_id
        self.policy_client = PolicyClient(cred, subscription_id)

    async def __aenter__(self) -> Self:
        await self.policy_client.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        await self.policy_client.__aexit__(exc_type, exc_val, exc_tb)

    async def get_definition(self, name: str) -> PolicyDefinition | None:
        """Look up a subscription level policy definition, `None` if there is no definition with that name"""
        try:
            return await self.policy_client.policy_definitions.get(name)
        except ResourceNotFoundError:
            return None

    async def upsert_definition(
        self, name: str, files: PolicyFiles, display_name: str, description: str
    ) -> PolicyUpsertOutcome:
        """Create the policy definition, or overwrite the rule and parameters of the existing one in place"""
        try:
            parameters = {key: ParameterDefinitionsValue.from_dict(value) for key, value in files.parameters.items()}
            existing = await self.get_definition(name)
            if existing is None:
                self.log.info("Creating policy definition %s", name)
                definition = PolicyDefinition(
                    policy_type=PolicyType.CUSTOM,
                    mode=POLICY_MODE,
                    display_name=display_name,
                    description=description,
                    policy_rule=files.rule,
                    parameters=parameters,
                )
            else:
                self.log.info("Updating policy definition %s", name)
                definition = existing
                definition.policy_rule = files.rule
                definition.parameters = parameters
            result = await self.policy_client.policy_definitions.create_or_update(name, definition)
        except (AzureError, DeserializationError) as e:
            self.log.error("Failed to create or update policy definition %s: %s", name, e)
            return PolicyUpsertOutcome(error=e)
        return PolicyUpsertOutcome(definition=result, created=existing is None)

    async def assign(
        self, definition: PolicyDefinition, scope: str, assignment_name: str, allowed_types: list[str]
    ) -> PolicyAssignment:
        self.log.info("Assigning policy %s to %s as %s", definition.name, scope, assignment_name)
        assignment = PolicyAssignment(
            display_name=definition.display_name,
            policy_definition_id=definition.id,
            parameters={ALLOWED_TYPES_PARAMETER: ParameterValuesValue(value=allowed_types)},
        )
        try:
            return await self.policy_client.policy_assignments.create(scope, assignment_name, assignment)
        except AzureError as e:
            raise PolicyAssignmentError(f"Failed to assign policy {definition.name} to {scope}: {e.message}") from e
