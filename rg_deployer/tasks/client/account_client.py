# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import Callable, Sequence
from contextlib import AbstractAsyncContextManager
from logging import Logger
from types import TracebackType
from typing import NamedTuple, Self, TypeAlias

# 3p
from azure.core.exceptions import AzureError, ClientAuthenticationError
from azure.identity.aio import DefaultAzureCredential
from azure.mgmt.resource.subscriptions.aio import SubscriptionClient

# project
from rg_deployer.tasks.common import collect
from rg_deployer.tasks.run_state import AuthenticationError, NoSubscriptionsError, SubscriptionSelectionError


class Subscription(NamedTuple):
    subscription_id: str
    display_name: str


ChooseSubscription: TypeAlias = Callable[[Sequence[Subscription]], int]
"""Given two or more subscriptions, returns the index of the one to use"""


def select_subscription(
    subscriptions: Sequence[Subscription], choose: ChooseSubscription, subscription_id: str | None = None
) -> Subscription:
    """Pick exactly one subscription. `choose` is only consulted when there is more than one to pick from"""
    if not subscriptions:
        raise NoSubscriptionsError("No subscriptions are available to the current login")
    if subscription_id:
        match = next((s for s in subscriptions if s.subscription_id.lower() == subscription_id.lower()), None)
        if match is None:
            raise NoSubscriptionsError(f"Subscription {subscription_id} is not available to the current login")
        return match
    if len(subscriptions) == 1:
        return subscriptions[0]
    index = choose(subscriptions)
    if not 0 <= index < len(subscriptions):
        raise SubscriptionSelectionError(f"Subscription choice {index} is out of range 0-{len(subscriptions) - 1}")
    return subscriptions[index]


class AccountClient(AbstractAsyncContextManager["AccountClient"]):
    def __init__(self, log: Logger, cred: DefaultAzureCredential) -> None:
        super().__init__()
        self.log = log
        self.subscriptions_client = SubscriptionClient(cred)

    async def __aenter__(self) -> Self:
        await self.subscriptions_client.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_val: BaseException | None, exc_tb: TracebackType | None
    ) -> None:
        await self.subscriptions_client.__aexit__(exc_type, exc_val, exc_tb)

    async def list_subscriptions(self) -> list[Subscription]:
        try:
            subscriptions = await collect(self.subscriptions_client.subscriptions.list())
        except ClientAuthenticationError as e:
            raise AuthenticationError(f"Login failed while listing subscriptions: {e.message}") from e
        except AzureError as e:
            raise SubscriptionSelectionError(f"Failed to list subscriptions: {e.message}") from e
        self.log.info("Found %s subscription(s)", len(subscriptions))
        return [
            Subscription(sub.subscription_id, sub.display_name or sub.subscription_id)
            for sub in subscriptions
            if sub.subscription_id
        ]
