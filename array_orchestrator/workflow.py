"""
Workload Domain Workflow

Provisions storage for a set of ESXi hosts on one array:
1. Open a session to every ESXi host
2. Create a storage host per ESXi host (Fibre Channel)
3. Create a host group holding those hosts
4. Create the datastore volume
5. Connect the volume to the host group
6. Create the VMFS datastore on one host
7. Rescan every host
8. Close the sessions

Neither the array nor vSphere offers multi-object transactions, so every
completed side effect is recorded in a rollback ledger and undone, best
effort, when a later step fails.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from functools import partial
from typing import Any, Callable, List, Optional, Tuple

from array_orchestrator.config import settings
from array_orchestrator.context import OperationContext
from array_orchestrator.correlator import ResourceCorrelator
from array_orchestrator.errors import (
    ConfigurationError,
    ConflictError,
    NotFoundError,
    WorkflowCancelledError,
)
from array_orchestrator.identifiers import disk_path_from_serial, host_group_name
from array_orchestrator.models import (
    ComputeCredentials,
    ComputeHost,
    Datastore,
    Protocol,
    StorageHost,
    StorageHostGroup,
    Volume,
)
from array_orchestrator.provisioning import create_storage_host

logger = logging.getLogger(__name__)

GIB = 1024 ** 3
TIB = 1024 ** 4


class WorkflowStep(str, Enum):
    OPEN_SESSIONS = "open_sessions"
    CREATE_HOSTS = "create_hosts"
    CREATE_HOST_GROUP = "create_host_group"
    CREATE_VOLUME = "create_volume"
    CONNECT_VOLUME = "connect_volume"
    CREATE_DATASTORE = "create_datastore"
    RESCAN_HOSTS = "rescan_hosts"
    CLOSE_SESSIONS = "close_sessions"


# Unwind order. The array refuses to delete a connected volume, and some
# firmware refuses to delete a host group that still has members.
ROLLBACK_ORDER = (
    WorkflowStep.CREATE_DATASTORE,
    WorkflowStep.CONNECT_VOLUME,
    WorkflowStep.CREATE_VOLUME,
    WorkflowStep.CREATE_HOSTS,
    WorkflowStep.CREATE_HOST_GROUP,
    WorkflowStep.OPEN_SESSIONS,
)


@dataclass
class UndoAction:
    step: WorkflowStep
    description: str
    undo: Callable[[], Any]


class RollbackLedger:
    """Undo actions recorded after each side effect succeeds."""

    def __init__(self):
        self._actions: List[UndoAction] = []

    def __len__(self):
        return len(self._actions)

    def record(self, step: WorkflowStep, description: str, undo: Callable[[], Any]) -> None:
        self._actions.append(UndoAction(step, description, undo))

    def descriptions(self) -> List[str]:
        return [action.description for action in self._actions]

    def unwind(self) -> List[Tuple[UndoAction, Exception]]:
        """
        Run every undo action and empty the ledger.

        Steps unwind in ROLLBACK_ORDER; actions of one step run newest first.
        A failing action is logged and the unwind continues.

        Returns:
            (action, error) for every action that failed
        """
        failures = []
        for step in ROLLBACK_ORDER:
            for action in reversed([a for a in self._actions if a.step == step]):
                logger.info(f"[Rollback] {action.description}")
                try:
                    action.undo()
                except Exception as e:
                    logger.error(f"[Rollback] {action.description} failed: {e}")
                    failures.append((action, e))
        self._actions.clear()
        return failures


@dataclass
class ProvisioningSession:
    """State of one workflow run."""
    connection: Any
    datastore_name: str
    size_bytes: int
    protocol: Protocol
    ledger: RollbackLedger = field(default_factory=RollbackLedger)
    completed_step: Optional[WorkflowStep] = None
    sessions: List[Any] = field(default_factory=list)
    compute_hosts: List[ComputeHost] = field(default_factory=list)
    storage_hosts: List[StorageHost] = field(default_factory=list)
    host_group: Optional[StorageHostGroup] = None
    volume: Optional[Volume] = None
    datastore: Optional[Datastore] = None
    rollback_errors: List[Tuple[UndoAction, Exception]] = field(default_factory=list)


def size_in_bytes(size_gb: Optional[int] = None, size_tb: Optional[int] = None) -> int:
    """Exactly one of size_gb / size_tb must be given."""
    if size_gb is not None and size_tb is not None:
        raise ConfigurationError("Specify the volume size in GB or in TB, not both")
    if size_gb is None and size_tb is None:
        raise ConfigurationError("Specify the volume size in GB or in TB")
    size_bytes = size_gb * GIB if size_gb is not None else size_tb * TIB
    if size_bytes <= 0:
        raise ConfigurationError("Volume size must be positive")
    return size_bytes


class WorkloadDomainWorkflow:
    """
    Provisions a workload domain's storage with rollback.

    Args:
        registry: ConnectionRegistry, used when no connection is passed
        compute: Compute collaborator (sessions, rescans, datastores)
        correlator: Optional ResourceCorrelator; built from registry/compute if omitted
    """

    def __init__(self, registry, compute, correlator: Optional[ResourceCorrelator] = None):
        self.registry = registry
        self.compute = compute
        self.correlator = correlator if correlator is not None else ResourceCorrelator(registry, compute)
        self.last_session: Optional[ProvisioningSession] = None

    def run(
        self,
        host_addresses: List[str],
        credentials: ComputeCredentials,
        datastore_name: str,
        size_gb: Optional[int] = None,
        size_tb: Optional[int] = None,
        protocol: Protocol = Protocol.FIBRE_CHANNEL,
        connection=None,
        context: Optional[OperationContext] = None,
    ) -> StorageHostGroup:
        """
        Execute the workflow.

        Input is validated before any remote call. Any later failure rolls
        back every completed step and re-raises the original error.

        Returns:
            The created host group
        """
        size_bytes, protocol = self.validate(host_addresses, datastore_name, size_gb, size_tb, protocol)
        connection = connection if connection is not None else self.registry.default()
        context = context if context is not None else OperationContext()

        session = ProvisioningSession(
            connection=connection,
            datastore_name=datastore_name,
            size_bytes=size_bytes,
            protocol=protocol,
        )
        self.last_session = session

        steps = (
            (WorkflowStep.OPEN_SESSIONS, partial(self._open_sessions, host_addresses, credentials)),
            (WorkflowStep.CREATE_HOSTS, self._create_hosts),
            (WorkflowStep.CREATE_HOST_GROUP, self._create_host_group),
            (WorkflowStep.CREATE_VOLUME, self._create_volume),
            (WorkflowStep.CONNECT_VOLUME, self._connect_volume),
            (WorkflowStep.CREATE_DATASTORE, self._create_datastore),
            (WorkflowStep.RESCAN_HOSTS, self._rescan_hosts),
            (WorkflowStep.CLOSE_SESSIONS, self._close_sessions),
        )

        logger.info(
            f"[Workload Domain] Provisioning {datastore_name} ({size_bytes} bytes) for "
            f"{len(host_addresses)} host(s) on {connection.endpoint}"
        )
        try:
            for number, (step, action) in enumerate(steps, start=1):
                if context.cancelled:
                    raise WorkflowCancelledError(step.value)
                logger.info(f"[Workload Domain] Step {number}/{len(steps)}: {step.value}")
                action(session)
                session.completed_step = step
        except Exception as e:
            logger.error(f"[Workload Domain] Failed after {_step_label(session.completed_step)}: {e}")
            self.rollback(session)
            raise

        logger.info(f"[Workload Domain] Host group {session.host_group.name} ready with datastore {datastore_name}")
        return session.host_group

    @staticmethod
    def validate(
        host_addresses: List[str],
        datastore_name: str,
        size_gb: Optional[int] = None,
        size_tb: Optional[int] = None,
        protocol: Protocol = Protocol.FIBRE_CHANNEL,
    ) -> Tuple[int, Protocol]:
        """Check run inputs without touching any remote system. Returns (size_bytes, protocol)."""
        size_bytes = size_in_bytes(size_gb, size_tb)
        try:
            protocol = Protocol(protocol)
        except ValueError:
            raise ConfigurationError(f"Unknown protocol {protocol!r}")
        if protocol != Protocol.FIBRE_CHANNEL:
            raise ConfigurationError(f"Protocol {protocol.value} is not supported, only Fibre Channel")
        if not host_addresses:
            raise ConfigurationError("At least one ESXi host address is required")
        if not datastore_name:
            raise ConfigurationError("A datastore name is required")
        return size_bytes, protocol

    def rollback(self, session: ProvisioningSession) -> None:
        """Undo everything recorded in the session ledger."""
        logger.warning(f"[Workload Domain] Rolling back {len(session.ledger)} change(s)")
        session.rollback_errors = session.ledger.unwind()
        session.sessions = []
        if session.rollback_errors:
            logger.error(
                f"[Workload Domain] Rollback left {len(session.rollback_errors)} change(s) behind: "
                + "; ".join(action.description for action, _ in session.rollback_errors)
            )

    # =========================================================================
    # Steps
    # =========================================================================

    def _open_sessions(self, host_addresses: List[str], credentials: ComputeCredentials, session: ProvisioningSession):
        for address in host_addresses:
            si = self.compute.open_session(address, credentials)
            session.sessions.append(si)
            session.ledger.record(
                WorkflowStep.OPEN_SESSIONS,
                f"close session to {address}",
                partial(self.compute.close_session, si),
            )
            session.compute_hosts.append(self.compute.get_host(si))

    def _create_hosts(self, session: ProvisioningSession):
        connection = session.connection
        for index, compute_host in enumerate(session.compute_hosts):
            try:
                existing = self.correlator.host_to_storage_host(compute_host, connection)
            except NotFoundError:
                existing = None

            if existing is not None:
                if index == 0:
                    raise ConflictError(
                        f"{compute_host.name} is already configured on {connection.endpoint} as host "
                        f"{existing.name}. A new workload domain needs hosts the array does not know yet.",
                        error_code="HOST_EXISTS",
                    )
                raise ConflictError(
                    f"{compute_host.name} already exists on {connection.endpoint} as host {existing.name}",
                    error_code="HOST_EXISTS",
                )

            storage_host = create_storage_host(
                self.correlator, compute_host, connection, session.protocol, check_existing=False
            )
            session.storage_hosts.append(storage_host)
            session.ledger.record(
                WorkflowStep.CREATE_HOSTS,
                f"delete host {storage_host.name}",
                partial(connection.delete_host, storage_host.name),
            )

    def _create_host_group(self, session: ProvisioningSession):
        connection = session.connection
        name = host_group_name(settings.host_group_prefix)
        group = connection.create_host_group(name, [host.name for host in session.storage_hosts])
        session.host_group = group
        session.ledger.record(
            WorkflowStep.CREATE_HOST_GROUP,
            f"delete host group {group.name}",
            partial(connection.delete_host_group, group.name),
        )

    def _create_volume(self, session: ProvisioningSession):
        connection = session.connection
        volume = connection.create_volume(session.datastore_name, session.size_bytes)
        session.volume = volume
        session.ledger.record(
            WorkflowStep.CREATE_VOLUME,
            f"delete volume {volume.name}",
            partial(connection.delete_volume, volume.name, eradicate=settings.eradicate_on_rollback),
        )

    def _connect_volume(self, session: ProvisioningSession):
        connection = session.connection
        volume_name = session.volume.name
        group_name = session.host_group.name
        connection.connect_volume_to_group(volume_name, group_name)
        session.ledger.record(
            WorkflowStep.CONNECT_VOLUME,
            f"disconnect volume {volume_name} from {group_name}",
            partial(connection.disconnect_volume_from_group, volume_name, group_name),
        )

    def _create_datastore(self, session: ProvisioningSession):
        disk_path = disk_path_from_serial(session.volume.serial)
        first_host = session.compute_hosts[0]
        self.compute.rescan_storage(first_host)
        datastore = self.compute.create_vmfs_datastore(first_host, session.datastore_name, disk_path)
        session.datastore = datastore
        session.ledger.record(
            WorkflowStep.CREATE_DATASTORE,
            f"remove datastore {datastore.name}",
            partial(self.compute.remove_datastore, first_host, datastore),
        )

    def _rescan_hosts(self, session: ProvisioningSession):
        for compute_host in session.compute_hosts:
            self.compute.rescan_storage(compute_host)

    def _close_sessions(self, session: ProvisioningSession):
        for si in session.sessions:
            try:
                self.compute.close_session(si)
            except Exception as e:
                logger.warning(f"[Workload Domain] Closing a host session failed: {e}")
        session.sessions = []
        session.ledger = RollbackLedger()


def _step_label(step: Optional[WorkflowStep]) -> str:
    return step.value if step else "no completed step"
