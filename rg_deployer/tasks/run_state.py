# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from dataclasses import dataclass, field
from enum import Enum
from typing import Any


class RunState(Enum):
    START = "Start"
    AUTHENTICATED = "Authenticated"
    SUBSCRIPTION_SELECTED = "SubscriptionSelected"
    GROUP_ENSURED = "GroupEnsured"
    TAGS_SET = "TagsSet"
    VALIDATED = "Validated"
    DEPLOYED = "Deployed"
    PROVIDER_REGISTERED = "ProviderRegistered"
    POLICY_UPSERTED = "PolicyUpserted"
    POLICY_ASSIGNED = "PolicyAssigned"
    POLICY_ASSIGNMENT_SKIPPED = "PolicyAssignmentSkipped"
    LOGGED_OUT = "LoggedOut"


class StageError(Exception):
    """A fatal error, the run stops before reaching `state`"""

    state: RunState


class AuthenticationError(StageError):
    state = RunState.AUTHENTICATED


class SubscriptionSelectionError(StageError):
    state = RunState.SUBSCRIPTION_SELECTED


class NoSubscriptionsError(SubscriptionSelectionError):
    pass


class ResourceGroupError(StageError):
    state = RunState.GROUP_ENSURED


class TagUpdateError(StageError):
    state = RunState.TAGS_SET


class TemplateValidationError(StageError):
    state = RunState.VALIDATED

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = errors or []


class TemplateFileError(TemplateValidationError):
    pass


class DeploymentFailedError(StageError):
    state = RunState.DEPLOYED


class ProviderRegistrationError(StageError):
    state = RunState.PROVIDER_REGISTERED


class PolicyAssignmentError(StageError):
    state = RunState.POLICY_ASSIGNED


@dataclass(frozen=True)
class PolicyUpsertOutcome:
    definition: Any = None
    created: bool = False
    error: Exception | None = None

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.definition is not None


@dataclass
class RunResult:
    states: list[RunState] = field(default_factory=lambda: [RunState.START])
    error: StageError | None = None
    policy_outcome: PolicyUpsertOutcome | None = None
    elapsed_seconds: float = 0.0

    @property
    def state(self) -> RunState:
        return self.states[-1]

    @property
    def succeeded(self) -> bool:
        return self.error is None

    def advance(self, state: RunState) -> None:
        self.states.append(state)

    def summary(self) -> str:
        return " -> ".join(state.value for state in self.states)
