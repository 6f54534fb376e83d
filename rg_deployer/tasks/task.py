# Unless explicitly stated otherwise all files in this repository are licensed under the Apache-2 License.

# This product includes software developed at Datadog (https://www.datadoghq.com/) Copyright 2025 Datadog, Inc.

# stdlib
from abc import abstractmethod
from contextlib import AbstractAsyncContextManager
from logging import WARNING, basicConfig, getLogger
from time import time
from types import TracebackType
from typing import Any, Self
from uuid import uuid4

# 3p
from azure.identity.aio import DefaultAzureCredential

# project
from rg_deployer.settings.env import LOG_LEVEL_SETTING, parse_config_option, parse_log_level

log = getLogger(__name__)

# silence azure logging except for warnings and errors
getLogger("azure").setLevel(WARNING)


class Task(AbstractAsyncContextManager["Task"]):
    NAME: str

    def __init__(self) -> None:
        self.credential = DefaultAzureCredential()
        self.start_time = time()
        self.execution_id = str(uuid4())
        self.log = log.getChild(self.__class__.__name__)

    @abstractmethod
    async def run(self) -> Any: ...

    @property
    def elapsed_seconds(self) -> float:
        return time() - self.start_time

    async def __aenter__(self) -> Self:
        await self.credential.__aenter__()
        return self

    async def __aexit__(
        self, exc_type: type[BaseException] | None, exc_value: BaseException | None, traceback: TracebackType | None
    ) -> None:
        await self.credential.__aexit__(exc_type, exc_value, traceback)


def configure_logging() -> str:
    """Set up the root handler and the project log level from the environment, returns the level used"""
    level = parse_config_option(LOG_LEVEL_SETTING, parse_log_level, "INFO")
    basicConfig()
    getLogger("rg_deployer").setLevel(level)
    return level
