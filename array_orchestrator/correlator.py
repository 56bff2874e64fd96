"""
Resource Correlator

Maps compute-side identities (datastores, ESXi hosts, clusters) onto the
array connection and storage objects that back them.
"""

import logging
from typing import Dict, Iterable, List, Optional, Tuple

from array_orchestrator.context import OperationContext
from array_orchestrator.errors import (
    ConflictError,
    NotFoundError,
    RemoteOperationError,
    UnsupportedDatastoreError,
)
from array_orchestrator.identifiers import (
    any_match,
    array_serial_from_vvol_uuid,
    iqns_match,
    volume_serial_from_naa,
    wwns_match,
)
from array_orchestrator.models import (
    ComputeHost,
    Datastore,
    DatastoreKind,
    StorageHost,
    StorageHostGroup,
    Volume,
)

logger = logging.getLogger(__name__)

# Per-candidate failures that are skipped when scanning independent arrays
SKIPPABLE_ERRORS = (NotFoundError, RemoteOperationError)


class ResourceCorrelator:
    """
    Correlates compute objects with storage objects.

    Args:
        registry: ConnectionRegistry supplying candidates when none are given
        compute: Compute collaborator (cluster membership lookups)
    """

    def __init__(self, registry, compute=None):
        self.registry = registry
        self.compute = compute

    def _candidates(self, candidates: Optional[Iterable]) -> List:
        return self.registry.all() if candidates is None else list(candidates)

    # =========================================================================
    # Datastores
    # =========================================================================

    def datastore_to_array(
        self,
        datastore: Datastore,
        candidates: Optional[Iterable] = None,
        context: Optional[OperationContext] = None,
    ):
        """
        Find the array connection backing a datastore.

        VMFS datastores are matched by the serial of their first extent's
        volume; VVol datastores by the array id in their storage array UUID.

        Raises:
            UnsupportedDatastoreError: datastore is not array backed
            NotFoundError: no candidate owns the datastore
        """
        if datastore.kind == DatastoreKind.VMFS:
            serial = volume_serial_from_naa(datastore.disk_identifier)
            if serial is None:
                raise UnsupportedDatastoreError(
                    f"Datastore {datastore.name} is not backed by a FlashArray volume "
                    f"({datastore.disk_identifier})"
                )
            connection = self._find_volume_owner(serial, self._candidates(candidates))
        elif datastore.kind == DatastoreKind.VVOL:
            array_serial = array_serial_from_vvol_uuid(datastore.storage_array_uuid)
            if array_serial is None:
                raise UnsupportedDatastoreError(
                    f"VVol datastore {datastore.name} has no storage array UUID"
                )
            connection = self._find_array_by_identity(array_serial, self._candidates(candidates))
        else:
            raise UnsupportedDatastoreError(
                f"Datastore {datastore.name} is {datastore.kind.value}, only VMFS and VVol are supported"
            )

        if connection is None:
            raise NotFoundError(f"No connected array backs datastore {datastore.name}")

        logger.info(f"Datastore {datastore.name} is on array {connection.endpoint}")
        if context is not None:
            context.record_array(connection)
        return connection

    def _find_volume_owner(self, serial: str, candidates: List):
        for connection in candidates:
            try:
                volumes = connection.list_volumes()
            except SKIPPABLE_ERRORS as e:
                logger.warning(f"Skipping {connection.endpoint}: could not list volumes: {e}")
                continue
            if any(volume.serial.upper() == serial for volume in volumes):
                return connection
        return None

    def _find_array_by_identity(self, array_serial: str, candidates: List):
        wanted = array_serial.lower()
        for connection in candidates:
            try:
                identity = connection.get_array_identity()
            except SKIPPABLE_ERRORS as e:
                logger.warning(f"Skipping {connection.endpoint}: could not read array identity: {e}")
                continue
            if identity.serial.lower() == wanted:
                return connection
        return None

    def volume_for_datastore(self, datastore: Datastore, connection) -> Volume:
        """Return the array volume backing a VMFS datastore."""
        serial = volume_serial_from_naa(datastore.disk_identifier) if datastore.kind == DatastoreKind.VMFS else None
        if serial is None:
            raise UnsupportedDatastoreError(f"Datastore {datastore.name} is not a FlashArray VMFS datastore")
        for volume in connection.list_volumes():
            if volume.serial.upper() == serial:
                return volume
        raise NotFoundError(f"Volume with serial {serial} not found on {connection.endpoint}")

    # =========================================================================
    # Hosts
    # =========================================================================

    def host_to_storage_host(
        self,
        compute_host: ComputeHost,
        connection,
        context: Optional[OperationContext] = None,
    ) -> StorageHost:
        """
        Find the storage host for an ESXi host.

        IQNs are tried first across every storage host, WWNs only when no IQN
        matches. When several storage hosts claim the host's identifiers, the
        first one in array order wins and the others are logged.
        """
        storage_hosts = connection.list_hosts()

        matches = [
            host for host in storage_hosts
            if any_match(compute_host.iqns, host.iqns, iqns_match)
        ]
        if not matches:
            matches = [
                host for host in storage_hosts
                if any_match(compute_host.wwns, host.wwns, wwns_match)
            ]
        if not matches:
            raise NotFoundError(f"No host on {connection.endpoint} matches {compute_host.name}")

        if len(matches) > 1:
            others = ", ".join(host.name for host in matches[1:])
            message = (
                f"{compute_host.name} matches several hosts on {connection.endpoint}; "
                f"using {matches[0].name}, ignoring {others}"
            )
            logger.warning(message)
            if context is not None:
                context.warn(message)

        if context is not None:
            context.record_array(connection)
        return matches[0]

    def storage_hosts_for_cluster(self, cluster, connection) -> List[Tuple[ComputeHost, StorageHost]]:
        """Pair every cluster host with its storage host, skipping hosts without one."""
        pairs = []
        for compute_host in self.compute.list_cluster_hosts(cluster):
            try:
                pairs.append((compute_host, self.host_to_storage_host(compute_host, connection)))
            except SKIPPABLE_ERRORS as e:
                logger.debug(f"No storage host for {compute_host.name}: {e}")
        return pairs

    # =========================================================================
    # Clusters
    # =========================================================================

    def cluster_to_host_groups(
        self,
        cluster,
        connection,
        context: Optional[OperationContext] = None,
        strict: bool = False,
    ) -> List[StorageHostGroup]:
        """
        Find the host group(s) holding a cluster's hosts.

        One group per cluster is expected. Several groups are returned as-is
        with a warning (or ConflictError when strict).

        Raises:
            NotFoundError: none of the cluster hosts belongs to a host group
        """
        group_names = []
        for _, storage_host in self.storage_hosts_for_cluster(cluster, connection):
            if storage_host.host_group and storage_host.host_group not in group_names:
                group_names.append(storage_host.host_group)

        if not group_names:
            raise NotFoundError(f"No host group on {connection.endpoint} holds hosts of cluster {_cluster_name(cluster)}")

        groups = [connection.get_host_group(name) for name in group_names]

        if len(groups) > 1:
            message = (
                f"Cluster {_cluster_name(cluster)} spans multiple host groups on "
                f"{connection.endpoint}: {', '.join(group_names)}"
            )
            if strict:
                raise ConflictError(message, error_code="MULTIPLE_HOST_GROUPS")
            logger.warning(message)
            if context is not None:
                context.warn(message)

        if context is not None:
            context.record_array(connection)
        return groups

    def host_groups_across_arrays(
        self,
        cluster,
        candidates: Optional[Iterable] = None,
        context: Optional[OperationContext] = None,
    ) -> Dict[str, List[StorageHostGroup]]:
        """
        Resolve a cluster's host groups on every candidate array.

        Arrays are independent targets: a failure on one is logged and
        skipped. Returns endpoint -> groups for the arrays that matched.
        """
        results = {}
        for connection in self._candidates(candidates):
            try:
                results[connection.endpoint] = self.cluster_to_host_groups(cluster, connection, context=context)
            except SKIPPABLE_ERRORS as e:
                logger.info(f"No host group for {_cluster_name(cluster)} on {connection.endpoint}: {e}")
        return results


def _cluster_name(cluster) -> str:
    return getattr(cluster, 'name', str(cluster))
