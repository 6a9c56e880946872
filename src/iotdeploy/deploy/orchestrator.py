"""
Deployment orchestrator.

Drives every discovered device through the same sequence:

    DISCOVERED -> CREDENTIALS_RESOLVED -> INPUTS_PREPARED -> STRUCTURE_RETRIEVED
        -> NODE_SELECTED -> LAUNCHED -> DONE

A device whose address has no placement node ends SKIPPED; a device whose
pipeline raised ends FAILED. Device types are handled one after the other,
devices of a type one after the other, each with its own remote session.
"""

from __future__ import annotations

import logging
import threading
from collections.abc import Sequence

from ..credentials import CredentialStore
from ..discovery.actions import CreateDeploymentDirectoryAction
from ..discovery.base import SessionFactory
from ..domain import (
    ActionBinding,
    DecodeError,
    DeploymentError,
    DeploymentOutcome,
    DeploymentState,
    DiscoveryResult,
    IntegrityError,
    RegistrationScope,
    RemoteCommandError,
    TransportError,
)
from ..interfaces import DeviceDiscovery, PostDiscoveryAction
from ..remote import RemoteSession
from .context import DeploymentContext
from .inputs import InputSource
from .structure import compose_action_keys, positive_action_keys, select_node
from .watcher import ChangeWatcher

logger = logging.getLogger(__name__)


class DeploymentOrchestrator:
    """
    Deploys one input source to every device of the given types.

    Usage:
        orchestrator = DeploymentOrchestrator(
            types=["_workstation._tcp"],
            input_source=ContainerImageInput("svc:latest"),
            discovery=AvahiDiscovery(),
            credentials=CredentialStore.from_file("credentials.json"),
        )
        orchestrator.register_action(RegistrationScope.all(), lifx_action, "lifx")
        outcomes = orchestrator.run()

    Error policy:
        - ConfigError is raised by preflight() before any device is contacted
        - TransportError, DecodeError, IntegrityError fail the device, the
          run continues
        - RemoteCommandError fails the device and, with fail_fast, ends the run
    """

    def __init__(
        self,
        types: Sequence[str],
        input_source: InputSource,
        discovery: DeviceDiscovery,
        credentials: CredentialStore,
        context: DeploymentContext | None = None,
        *,
        session_factory: SessionFactory = RemoteSession,
        fail_fast: bool = True,
        automatic_redeployment: bool = False,
        redeployment_interval: float = 30.0,
    ) -> None:
        self.types = list(types)
        self.input_source = input_source
        self.discovery = discovery
        self.credentials = credentials
        self.context = context or DeploymentContext()
        self.fail_fast = fail_fast
        self.automatic_redeployment = automatic_redeployment
        self.redeployment_interval = redeployment_interval
        self.stop_event = threading.Event()
        self._session_factory = session_factory
        self._bindings: dict[str, list[ActionBinding]] = {device_type: [] for device_type in self.types}
        self.preparation_actions: list[PostDiscoveryAction] = [
            CreateDeploymentDirectoryAction(self.context.deployment_dir)
        ]

    # =========================================================================
    # Action registration
    # =========================================================================

    def register_action(self, scope: RegistrationScope, action: PostDiscoveryAction, option: str) -> None:
        """Bind action (reported under option) to every type the scope covers."""
        device_types = scope.resolve(self.types)
        if not device_types:
            logger.warning("Action %s does not apply to any searched type", action.identifier)
        for device_type in device_types:
            self._bindings[device_type].append(ActionBinding(option=option, action=action))

    def bindings(self, device_type: str) -> list[ActionBinding]:
        return list(self._bindings.get(device_type, []))

    def actions_for(self, device_type: str) -> list[PostDiscoveryAction]:
        return [*self.preparation_actions, *(binding.action for binding in self.bindings(device_type))]

    # =========================================================================
    # Run
    # =========================================================================

    def preflight(self) -> None:
        """
        Resolve every credential the run will need.

        Raises:
            ConfigError: If a key is missing from or ambiguous in the store
        """
        for device_type in self.types:
            self.credentials.obtain(device_type)
        registry_key = self.input_source.registry_key
        if registry_key:
            self.credentials.obtain(registry_key, allow_empty=True)

    def run(self) -> list[DeploymentOutcome]:
        self.preflight()
        outcomes = self.deploy_all()
        if self.automatic_redeployment:
            self.watch()
        return outcomes

    def deploy_all(self) -> list[DeploymentOutcome]:
        self.context.start()
        self.context.notice("Starting deployment of %s", self.input_source.product_name)
        outcomes: list[DeploymentOutcome] = []
        try:
            for device_type in self.types:
                outcomes.extend(self.deploy_type(device_type))
        finally:
            self.context.finish()
        return outcomes

    def deploy_type(self, device_type: str) -> list[DeploymentOutcome]:
        logger.info("Searching for devices of type %s", device_type)
        credentials = self.credentials.obtain(device_type)
        try:
            results = self.discovery.run(device_type, self.actions_for(device_type), credentials)
        except TransportError as exc:
            logger.error("Discovery of %s failed: %s", device_type, exc)
            return []
        if not results:
            logger.warning("No devices of type %s found", device_type)
        return [self.deploy(result, device_type) for result in results]

    def deploy(self, result: DiscoveryResult, device_type: str | None = None) -> DeploymentOutcome:
        """Run the per-device sequence and return where it ended."""
        outcome = DeploymentOutcome(device=result.device)
        try:
            self._deploy(result, device_type or result.device.identifier, outcome)
        except RemoteCommandError as exc:
            self._fail(outcome, exc)
            if self.fail_fast:
                raise
        except (TransportError, DecodeError, IntegrityError) as exc:
            self._fail(outcome, exc)
        return outcome

    def _deploy(self, result: DiscoveryResult, device_type: str, outcome: DeploymentOutcome) -> None:
        device = result.device.with_credentials(self.credentials.obtain(device_type))
        registry_credentials = None
        if self.input_source.registry_key:
            registry_credentials = self.credentials.obtain(self.input_source.registry_key, allow_empty=True)
        outcome.device = device
        self._transition(outcome, DeploymentState.CREDENTIALS_RESOLVED)

        address = device.address()
        action_keys = compose_action_keys(positive_action_keys(self.bindings(device_type), result))
        logger.info("Deploying to %s with action keys %s", device, action_keys)

        with self._session_factory(device) as remote:
            self.input_source.prepare_inputs(self.context, remote, registry_credentials)
            self._transition(outcome, DeploymentState.INPUTS_PREPARED)

            structure_path, placement = self.input_source.export_structure(self.context, remote, action_keys)
            outcome.structure_path = structure_path
            self._transition(outcome, DeploymentState.STRUCTURE_RETRIEVED)

            node = select_node(placement, address)
            if node is None:
                logger.warning("No deployment node found for %s, skipping device", device)
                self._transition(outcome, DeploymentState.SKIPPED)
                return
            outcome.node_id = node.id
            self._transition(outcome, DeploymentState.NODE_SELECTED)

            self.input_source.launch(self.context, remote, node, structure_path)
            self._transition(outcome, DeploymentState.LAUNCHED)

        self._transition(outcome, DeploymentState.DONE)
        self.context.notice("Deployed %s to %s as node %s", self.input_source.product_name, device, node.id)

    def _transition(self, outcome: DeploymentOutcome, state: DeploymentState) -> None:
        outcome.state = state
        logger.info("%s: %s", outcome.device.hostname, state.value)

    def _fail(self, outcome: DeploymentOutcome, error: DeploymentError) -> None:
        logger.error("Deployment to %s failed in state %s: %s", outcome.device, outcome.state.value, error)
        outcome.state = DeploymentState.FAILED
        outcome.error = error

    # =========================================================================
    # Automatic redeployment
    # =========================================================================

    def watch(self) -> None:
        """Redeploy on every local change until stop() is called."""
        watcher = ChangeWatcher(
            self.input_source.watch_paths(),
            interval=self.redeployment_interval,
            stop_event=self.stop_event,
        )
        watcher.watch(self._redeploy)

    def _redeploy(self) -> None:
        self.context.notice("Local changes detected, redeploying")
        self.deploy_all()

    def stop(self) -> None:
        self.stop_event.set()
        self.discovery.stop()


__all__ = ["DeploymentOrchestrator"]
