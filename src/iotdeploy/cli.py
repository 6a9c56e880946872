"""Command line entry point: iotdeploy deploy | kill-session."""

from __future__ import annotations

import argparse
import logging
from collections.abc import Sequence
from pathlib import Path

from .config import build_actions, build_input_source, load_deploy_settings, split_types
from .config.loader import DeploySettings
from .credentials import CredentialStore
from .deploy.context import DeploymentContext
from .deploy.orchestrator import DeploymentOrchestrator
from .deploy.teardown import kill_sessions
from .discovery import AvahiDiscovery, BaseDiscovery, StaticDiscovery
from .domain import DeploymentError, DeploymentState
from .infrastructure import configure_logging

logger = logging.getLogger(__name__)

DEFAULT_CONFIG = "deploy.yaml"


def _add_common_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("--credentials-file", default=None, help="JSON credential file (prompt if unset)")
    parser.add_argument("--inventory", default=None, help="Static YAML inventory (avahi discovery if unset)")
    parser.add_argument("--verbose", action="store_true", help="Verbose output")


def _parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(prog="iotdeploy", description="Deploy a web service onto IoT devices.")
    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser("deploy", help="Discover devices and deploy to them")
    deploy.add_argument("--config", default=None, help=f"Path to the YAML config (default: {DEFAULT_CONFIG} if present)")
    deploy.add_argument("--types", default=None, help="Comma separated device types to search for")
    deploy.add_argument("--deployment-dir", default=None, help="Remote deployment directory")
    deploy.add_argument("--port", type=int, default=None, help="Port of the deployed web service")
    source = deploy.add_mutually_exclusive_group()
    source.add_argument("--docker-image", default=None, help="Deploy a prebuilt image")
    source.add_argument("--package-dir", default=None, help="Deploy a source package built on the device")
    source.add_argument("--compose-file", default=None, help="Deploy a docker compose stack")
    deploy.add_argument("--product-name", default=None, help="Product built from --package-dir")
    deploy.add_argument(
        "--automatic-redeploy",
        action="store_true",
        default=None,
        help="Redeploy whenever the local input changes",
    )
    deploy.add_argument("--redeployment-interval", type=float, default=None, help="Seconds between change checks")
    deploy.add_argument("--dump-log", action="store_true", default=None, help="Write a JSON dump log to Logs/")
    deploy.add_argument(
        "--no-fail-fast",
        dest="fail_fast",
        action="store_false",
        default=None,
        help="Continue with the next device after a failed remote command",
    )
    _add_common_arguments(deploy)
    deploy.add_argument(
        "web_service_arguments",
        nargs=argparse.REMAINDER,
        help="Arguments passed to the web service (after --)",
    )

    kill = subparsers.add_parser("kill-session", help="Stop the deployed service on discovered devices")
    kill.add_argument("types", help="Comma separated device types to search for")
    kill.add_argument("--product-name", default=None, help="tmux session to kill")
    kill.add_argument("--docker", action="store_true", help="Stop and remove ALL containers instead")
    _add_common_arguments(kill)
    return parser.parse_args(argv)


def _input_override(args: argparse.Namespace) -> dict[str, str] | None:
    if args.docker_image:
        return {"docker_image": args.docker_image}
    if args.compose_file:
        return {"compose_file": args.compose_file}
    if args.package_dir:
        return {"package_dir": args.package_dir, "product_name": args.product_name}
    if args.product_name:
        return {"product_name": args.product_name}
    return None


def _settings_from_args(args: argparse.Namespace) -> DeploySettings:
    config_path = args.config
    if config_path is None and Path(DEFAULT_CONFIG).exists():
        config_path = DEFAULT_CONFIG
    web_service_arguments = list(args.web_service_arguments or [])
    if web_service_arguments[:1] == ["--"]:
        web_service_arguments = web_service_arguments[1:]
    return load_deploy_settings(
        config_path,
        types=args.types,
        deployment_dir=args.deployment_dir,
        port=args.port,
        automatic_redeployment=args.automatic_redeploy,
        redeployment_interval=args.redeployment_interval,
        credentials_file=args.credentials_file,
        inventory_file=args.inventory,
        dump_log=args.dump_log,
        fail_fast=args.fail_fast,
        input=_input_override(args),
        web_service_arguments=web_service_arguments or None,
        log_level="DEBUG" if args.verbose else None,
    )


def _credential_store(credentials_file: str | Path | None) -> CredentialStore:
    if credentials_file:
        return CredentialStore.from_file(credentials_file)
    return CredentialStore()


def _discovery(inventory: str | Path | None, run_post_actions: bool = True) -> BaseDiscovery:
    if inventory:
        return StaticDiscovery.from_file(inventory, run_post_actions=run_post_actions)
    return AvahiDiscovery(run_post_actions=run_post_actions)


def run_deploy(args: argparse.Namespace) -> int:
    settings = _settings_from_args(args)
    # Runs with a credential file are unattended, keep a dump for postmortems.
    dump_path = configure_logging(
        settings.log_level,
        dump_log=settings.dump_log or settings.credentials_file is not None,
    )
    if dump_path:
        logger.info("Writing dump log to %s", dump_path)

    if not settings.types:
        logger.error("No device types given (--types or 'types' in the config)")
        return 1

    orchestrator = DeploymentOrchestrator(
        types=settings.types,
        input_source=build_input_source(settings),
        discovery=_discovery(settings.inventory_file),
        credentials=_credential_store(settings.credentials_file),
        context=DeploymentContext(
            deployment_dir=settings.deployment_dir,
            port=settings.port,
            web_service_arguments=settings.web_service_arguments,
        ),
        fail_fast=settings.fail_fast,
        automatic_redeployment=settings.automatic_redeployment,
        redeployment_interval=settings.redeployment_interval,
    )
    for scope, action, option in build_actions(settings):
        orchestrator.register_action(scope, action, option)

    try:
        outcomes = orchestrator.run()
    except KeyboardInterrupt:
        orchestrator.stop()
        raise

    failed = [outcome for outcome in outcomes if outcome.state is DeploymentState.FAILED]
    skipped = [outcome for outcome in outcomes if outcome.state is DeploymentState.SKIPPED]
    logger.info(
        "Deployment finished: %s done, %s skipped, %s failed",
        len(outcomes) - len(failed) - len(skipped),
        len(skipped),
        len(failed),
    )
    return 1 if failed else 0


def run_kill_session(args: argparse.Namespace) -> int:
    configure_logging("DEBUG" if args.verbose else "INFO")
    kill_sessions(
        split_types(args.types),
        _discovery(args.inventory, run_post_actions=False),
        _credential_store(args.credentials_file),
        product_name=args.product_name,
        docker=args.docker,
    )
    return 0


def main(argv: Sequence[str] | None = None) -> int:
    args = _parse_args(argv)
    try:
        if args.command == "kill-session":
            return run_kill_session(args)
        return run_deploy(args)
    except DeploymentError as exc:
        logger.error("%s", exc)
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    raise SystemExit(main())
