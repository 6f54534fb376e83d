# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from contextlib import AsyncExitStack
from types import TracebackType
from typing import Self

# 3p
from aiohttp import ClientSession
from azure.core.exceptions import AzureError

# project
from rg_deployer.settings.deployment_config import DeploymentConfig
from rg_deployer.tasks.client.account_client import AccountClient, ChooseSubscription, Subscription, select_subscription
from rg_deployer.tasks.client.policy_manager_client import PolicyManagerClient
from rg_deployer.tasks.client.resource_client import ResourceClient
from rg_deployer.tasks.client.template_files import build_deployment_properties, load_policy_files
from rg_deployer.tasks.common import (
    MANAGEMENT_SCOPE,
    POLICY_ASSIGNMENT_NAME,
    POLICY_DEFINITION_NAME,
    POLICY_DESCRIPTION,
    POLICY_DISPLAY_NAME,
    POLICY_INSIGHTS_NAMESPACE,
    format_elapsed,
    get_subscription_scope,
)
from rg_deployer.tasks.run_state import (
    AuthenticationError,
    PolicyUpsertOutcome,
    RunResult,
    RunState,
    StageError,
    TemplateFileError,
    TemplateValidationError,
)
from rg_deployer.tasks.task import Task

DEPLOYMENT_TASK_NAME = "deployment_task"


class DeploymentTask(Task):
    """Ensures the resource group, deploys the ARM template into it and
    assigns the allowed resource types policy to the subscription.

    Stages run strictly in order. A `StageError` stops the run, it is recorded on
    `result` and the task still logs out when the context exits. The only
    non-fatal stage is the policy definition upsert, whose failure skips the assignment.
    """

    NAME = DEPLOYMENT_TASK_NAME

    def __init__(self, config: DeploymentConfig, choose_subscription: ChooseSubscription) -> None:
        super().__init__()
        self.config = config
        self.choose_subscription = choose_subscription
        self.result = RunResult()
        self.account_client = AccountClient(self.log, self.credential)
        self.rest_client = ClientSession()
        self.resource_client: ResourceClient | None = None
        self.policy_client: PolicyManagerClient | None = None
        self.subscription: Subscription | None = None

    async def __aenter__(self) -> Self:
        async with AsyncExitStack() as stack:
            await super().__aenter__()
            stack.push_async_exit(super().__aexit__)
            await stack.enter_async_context(self.account_client)
            await stack.enter_async_context(self.rest_client)
            # everything is open, closing is left to __aexit__
            stack.pop_all()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        if self.policy_client:
            await self.policy_client.__aexit__(exc_type, exc_val, exc_tb)
        if self.resource_client:
            await self.resource_client.__aexit__(exc_type, exc_val, exc_tb)
        await self.rest_client.__aexit__(exc_type, exc_val, exc_tb)
        await self.account_client.__aexit__(exc_type, exc_val, exc_tb)
        await super().__aexit__(exc_type, exc_val, exc_tb)
        self.result.advance(RunState.LOGGED_OUT)
        self.result.elapsed_seconds = self.elapsed_seconds
        self.log.info("Logged out after %s", format_elapsed(self.result.elapsed_seconds))

    async def run(self) -> RunResult:
        try:
            await self.run_stages()
        except StageError as e:
            self.log.error("Run stopped before reaching %s: %s", e.state.value, e)
            if isinstance(e, TemplateValidationError):
                for error in e.errors:
                    self.log.error("    %s", error)
            self.result.error = e
        self.log.info("Run summary: %s", self.result.summary())
        return self.result

    async def run_stages(self) -> None:
        config = self.config
        await self.authenticate()
        self.result.advance(RunState.AUTHENTICATED)

        self.subscription = await self.select_subscription()
        self.result.advance(RunState.SUBSCRIPTION_SELECTED)
        subscription_id = self.subscription.subscription_id
        resource_client = self.resource_client = ResourceClient(self.log, self.credential, subscription_id)
        await resource_client.__aenter__()
        policy_client = self.policy_client = PolicyManagerClient(self.log, self.credential, subscription_id)
        await policy_client.__aenter__()

        resource_group = await resource_client.ensure_resource_group(config.resource_group_name, config.location)
        self.result.advance(RunState.GROUP_ENSURED)
        await resource_client.set_default_tags(resource_group)
        self.result.advance(RunState.TAGS_SET)

        properties = build_deployment_properties(config.template_file, config.template_parameter_file)
        await resource_client.validate_deployment(config.resource_group_name, config.deployment_name, properties)
        self.result.advance(RunState.VALIDATED)
        await resource_client.deploy(config.resource_group_name, config.deployment_name, properties)
        self.result.advance(RunState.DEPLOYED)

        await resource_client.register_provider(POLICY_INSIGHTS_NAMESPACE)
        allowed_types = await resource_client.list_resource_types(config.allowed_provider_namespaces)
        self.result.advance(RunState.PROVIDER_REGISTERED)

        outcome = await self.upsert_policy(policy_client)
        self.result.policy_outcome = outcome
        if not outcome.succeeded:
            self.log.warning(
                "Policy definition %s could not be created or updated, skipping policy assignment",
                POLICY_DEFINITION_NAME,
            )
            self.result.advance(RunState.POLICY_ASSIGNMENT_SKIPPED)
            return
        self.result.advance(RunState.POLICY_UPSERTED)

        await policy_client.assign(
            outcome.definition, get_subscription_scope(subscription_id), POLICY_ASSIGNMENT_NAME, allowed_types
        )
        self.result.advance(RunState.POLICY_ASSIGNED)

    async def authenticate(self) -> None:
        self.log.info("Logging in to Azure")
        try:
            await self.credential.get_token(MANAGEMENT_SCOPE)
        except AzureError as e:
            raise AuthenticationError(f"Login failed: {e.message}") from e

    async def select_subscription(self) -> Subscription:
        subscriptions = await self.account_client.list_subscriptions()
        subscription = select_subscription(subscriptions, self.choose_subscription, self.config.subscription_id)
        self.log.info("Using subscription %s (%s)", subscription.display_name, subscription.subscription_id)
        return subscription

    async def upsert_policy(self, policy_client: PolicyManagerClient) -> PolicyUpsertOutcome:
        try:
            files = await load_policy_files(
                self.rest_client, self.config.policy_template_file, self.config.policy_template_parameter_file
            )
        except TemplateFileError as e:
            self.log.error("Failed to load policy files: %s", e)
            return PolicyUpsertOutcome(error=e)
        return await policy_client.upsert_definition(
            POLICY_DEFINITION_NAME, files, POLICY_DISPLAY_NAME, POLICY_DESCRIPTION
        )
