#!/usr/bin/env python

# usage: rg-deploy [-h] [-c CONFIG] [--generate-config OUTPUT_FILE] [-s SUBSCRIPTION] [-g RESOURCE_GROUP_NAME]
#                  [-n DEPLOYMENT_NAME] [-t TEMPLATE_FILE] [-p TEMPLATE_PARAMETER_FILE] [-l LOCATION]
#                  [--policy-template-file POLICY_TEMPLATE_FILE]
#                  [--policy-template-parameter-file POLICY_TEMPLATE_PARAMETER_FILE]
#                  [--allowed-provider-namespace NAMESPACE]
#
# Create or reuse a resource group, deploy an ARM template into it and assign the allowed resource types policy
#
# Every option can also come from the configuration file or the environment, command line values win.

import argparse
from asyncio import run
from collections.abc import Sequence
from logging import getLogger

from rg_deployer.settings.deployment_config import (
    DeploymentConfig,
    InvalidConfigError,
    build_config,
    load_config_file,
    write_sample_config,
)
from rg_deployer.settings.env import MissingConfigOptionError
from rg_deployer.tasks.client.account_client import ChooseSubscription, Subscription
from rg_deployer.tasks.common import format_elapsed, now
from rg_deployer.tasks.deployment_task import DeploymentTask
from rg_deployer.tasks.run_state import RunResult
from rg_deployer.tasks.task import configure_logging

log = getLogger("rg_deployer.deploy")


# ===== User Interaction ===== #
def parse_subscription_choice(choice: str, count: int) -> int | None:
    """Returns the chosen index, the last one for an empty choice, or None if the choice is not valid"""
    choice = choice.strip()
    if not choice:
        return count - 1
    try:
        index = int(choice)
    except ValueError:
        return None
    return index if 0 <= index < count else None


def prompt_for_subscription(subscriptions: Sequence[Subscription]) -> int:
    """Lists the subscriptions and blocks until the user picks a valid one"""
    default = len(subscriptions) - 1
    print("Available subscriptions:")
    for index, sub in enumerate(subscriptions):
        print(f"  [{index}] {sub.display_name} ({sub.subscription_id})")

    index = parse_subscription_choice(input(f"Select a subscription (default {default}): "), len(subscriptions))
    while index is None:
        index = parse_subscription_choice(input(f"Please enter a number from 0 to {default}: "), len(subscriptions))
    return index


# ===== Configuration ===== #
def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(
        description="Create or reuse a resource group, deploy an ARM template into it "
        "and assign the allowed resource types policy to the subscription"
    )
    parser.add_argument("-c", "--config", help="Path to a YAML configuration file holding all deployment settings")
    parser.add_argument(
        "--generate-config", metavar="OUTPUT_FILE", help="Generate a sample configuration file and exit"
    )
    parser.add_argument(
        "-s",
        "--subscription",
        dest="subscription_id",
        help="Subscription ID to deploy into. If not provided, you are prompted when several are available",
    )
    parser.add_argument("-g", "--resource-group-name", "--resourceGroupName", dest="resource_group_name")
    parser.add_argument("-n", "--deployment-name", "--deploymentName", dest="deployment_name")
    parser.add_argument(
        "-t", "--template-file", "--templateFile", dest="template_file", help="ARM template path or URL"
    )
    parser.add_argument(
        "-p",
        "--template-parameter-file",
        "--templateParameterFile",
        dest="template_parameter_file",
        help="ARM template parameter file path or URL",
    )
    parser.add_argument(
        "-l", "--location", dest="location", help="Region for a new resource group (default: West Europe)"
    )
    parser.add_argument(
        "--policy-template-file",
        "--policyTemplateFile",
        dest="policy_template_file",
        help="Policy rule file path or URL",
    )
    parser.add_argument(
        "--policy-template-parameter-file",
        "--policyTemplateParameterFile",
        dest="policy_template_parameter_file",
        help="Policy parameter schema file path or URL",
    )
    parser.add_argument(
        "--allowed-provider-namespace",
        dest="allowed_provider_namespaces",
        action="append",
        metavar="NAMESPACE",
        help="Provider namespace whose resource types the policy allows, may be repeated "
        "(default: Microsoft.Compute and Microsoft.Storage)",
    )
    return parser.parse_args(argv)


def load_config(args: argparse.Namespace) -> DeploymentConfig:
    file_values = load_config_file(args.config) if args.config else {}
    return build_config(vars(args), file_values)


# ===== Run ===== #
async def run_deployment(
    config: DeploymentConfig, choose_subscription: ChooseSubscription = prompt_for_subscription
) -> RunResult:
    async with DeploymentTask(config, choose_subscription) as task:
        result = await task.run()
    return result


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    if args.generate_config:
        write_sample_config(args.generate_config)
        print(f"Sample configuration written to {args.generate_config}")
        return 0

    try:
        config = load_config(args)
    except (MissingConfigOptionError, InvalidConfigError) as e:
        log.error(str(e))
        return 1

    log.info("Starting deployment %s at %s", config.deployment_name, now())
    result = run(run_deployment(config))
    print(f"Elapsed time: {format_elapsed(result.elapsed_seconds)}")
    if result.error is not None:
        log.error("Deployment stopped before reaching %s", result.error.state.value)
        return 1
    log.info("Deployment done! Exiting.")
    return 0


def cli() -> None:
    configure_logging()
    raise SystemExit(main())


if __name__ == "__main__":
    cli()
