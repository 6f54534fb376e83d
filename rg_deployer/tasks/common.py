# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.
#
# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from collections.abc import AsyncIterable, Iterable, Mapping
from datetime import datetime
from types import MappingProxyType
from typing import Final, TypeVar

MANAGEMENT_SCOPE: Final = "https://management.azure.com/.default"

DEFAULT_TAGS: Final[Mapping[str, str]] = MappingProxyType({"Environment": "Test", "Company": "Sentia"})

POLICY_INSIGHTS_NAMESPACE: Final = "Microsoft.PolicyInsights"

POLICY_DEFINITION_NAME: Final = "allowed-resourcetypes"
POLICY_DISPLAY_NAME: Final = "Allowed resource types"
POLICY_DESCRIPTION: Final = "This policy enables you to specify the resource types that your organization can deploy."
POLICY_ASSIGNMENT_NAME: Final = "allowed-resourcetypes-assignment"
ALLOWED_TYPES_PARAMETER: Final = "listOfResourceTypesAllowed"

T = TypeVar("T")


def merge_tags(existing: Mapping[str, str] | None, defaults: Mapping[str, str] = DEFAULT_TAGS) -> dict[str, str]:
    """Add every default tag missing from `existing`, never overwriting a tag that is already set"""
    merged = dict(existing or {})
    for key, value in defaults.items():
        merged.setdefault(key, value)
    return merged


def qualified_resource_types(namespace: str, type_names: Iterable[str]) -> list[str]:
    return [f"{namespace}/{type_name}" for type_name in type_names]


def get_subscription_scope(subscription_id: str) -> str:
    return f"/subscriptions/{subscription_id}"


def format_elapsed(seconds: float) -> str:
    """Format a duration as HH:MM:SS.fff

    Example:
    >>> format_elapsed(3723.457)
    "01:02:03.457"
    """
    millis = round(seconds * 1000)
    hours, millis = divmod(millis, 3_600_000)
    minutes, millis = divmod(millis, 60_000)
    secs, millis = divmod(millis, 1000)
    return f"{hours:02}:{minutes:02}:{secs:02}.{millis:03}"


def now() -> str:
    """Return the current time in ISO format"""
    return datetime.now().isoformat()


async def collect(it: AsyncIterable[T]) -> list[T]:
    """Helper for collecting an async iterable, useful for simplifying error handling"""
    return [item async for item in it]
