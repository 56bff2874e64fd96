"""
Single-object provisioning operations.

Create storage hosts and host groups from compute objects, and point ESXi
software iSCSI adapters at an array's portals.
"""

import logging
from typing import List

from array_orchestrator.config import settings
from array_orchestrator.errors import ArrayOrchestratorError, ConflictError, NotFoundError
from array_orchestrator.identifiers import storage_host_name
from array_orchestrator.models import (
    ComputeHost,
    HbaKind,
    Protocol,
    StorageHost,
    StorageHostGroup,
)

logger = logging.getLogger(__name__)


def create_storage_host(
    correlator,
    compute_host: ComputeHost,
    connection,
    protocol: Protocol,
    check_existing: bool = True,
) -> StorageHost:
    """
    Create the array host object for an ESXi host.

    Args:
        check_existing: Look for an existing storage host first. Callers that
            already did the lookup pass False.

    Raises:
        ConflictError: the ESXi host already has a storage host
        NotFoundError: the ESXi host has no initiators for the protocol
    """
    if check_existing:
        try:
            existing = correlator.host_to_storage_host(compute_host, connection)
        except NotFoundError:
            existing = None
        if existing is not None:
            raise ConflictError(
                f"{compute_host.name} already exists on {connection.endpoint} as host {existing.name}",
                error_code="HOST_EXISTS",
            )

    name = storage_host_name(compute_host.hostname)
    if protocol == Protocol.FIBRE_CHANNEL:
        if not compute_host.wwns:
            raise NotFoundError(f"{compute_host.name} has no Fibre Channel adapters")
        return connection.create_host(name, wwns=list(compute_host.wwns))

    if not compute_host.iqns:
        raise NotFoundError(f"{compute_host.name} has no iSCSI adapter")
    return connection.create_host(name, iqns=list(compute_host.iqns))


def create_host_group_for_cluster(
    correlator,
    cluster,
    connection,
    protocol: Protocol,
    name: str,
) -> StorageHostGroup:
    """
    Build a host group that mirrors a compute cluster.

    Cluster hosts without a storage host get one. If the group already exists
    the missing hosts are added to it. Every cluster host is checked before
    anything is created; storage hosts created here are deleted again when a
    later array call fails.

    Raises:
        ConflictError: a cluster host already belongs to another host group
    """
    resolved = []
    for compute_host in correlator.compute.list_cluster_hosts(cluster):
        try:
            storage_host = correlator.host_to_storage_host(compute_host, connection)
        except NotFoundError:
            storage_host = None

        if storage_host and storage_host.host_group and storage_host.host_group != name:
            raise ConflictError(
                f"Host {storage_host.name} already belongs to host group {storage_host.host_group}",
                error_code="HOST_IN_OTHER_GROUP",
            )
        resolved.append((compute_host, storage_host))

    host_names: List[str] = []
    created: List[str] = []
    try:
        for compute_host, storage_host in resolved:
            if storage_host is None:
                storage_host = create_storage_host(
                    correlator, compute_host, connection, protocol, check_existing=False
                )
                created.append(storage_host.name)
            host_names.append(storage_host.name)

        try:
            group = connection.get_host_group(name)
        except NotFoundError:
            return connection.create_host_group(name, host_names)

        missing = [host for host in host_names if host not in group.hosts]
        if missing:
            connection.add_hosts_to_group(name, missing)
            group = connection.get_host_group(name)
        return group
    except ArrayOrchestratorError:
        _delete_hosts(connection, created)
        raise


def _delete_hosts(connection, host_names: List[str]) -> None:
    for host_name in reversed(host_names):
        try:
            connection.delete_host(host_name)
        except ArrayOrchestratorError as e:
            logger.error(f"Could not remove host {host_name} from {connection.endpoint}: {e}")


def configure_iscsi_targets(compute, compute_host: ComputeHost, connection) -> List[str]:
    """
    Point a host's software iSCSI adapter at every iSCSI portal of an array.

    Returns:
        Portal addresses that were added
    """
    portals = [
        interface.address
        for interface in connection.list_network_interfaces()
        if interface.enabled and interface.address and "iscsi" in interface.services
    ]
    if not portals:
        raise NotFoundError(f"{connection.endpoint} has no enabled iSCSI interfaces")

    compute.enable_software_iscsi(compute_host)
    hbas = compute.list_hbas(compute_host, HbaKind.ISCSI)
    if not hbas:
        raise NotFoundError(f"{compute_host.name} has no iSCSI adapter after enabling software iSCSI")
    device = hbas[0].device

    for address in portals:
        compute.add_iscsi_target(compute_host, device, address)
        compute.set_iscsi_parameter(compute_host, device, address, "DelayedAck", settings.iscsi_delayed_ack)
        compute.set_iscsi_parameter(compute_host, device, address, "LoginTimeout", settings.iscsi_login_timeout)

    logger.info(f"Configured {len(portals)} iSCSI target(s) on {compute_host.name} for {connection.endpoint}")
    return portals
