"""
vSphere Compute Client

ESXi host and cluster operations needed for storage provisioning, using
pyVmomi:
- Direct host sessions via SmartConnect
- HBA discovery (FC WWNs, iSCSI IQNs)
- Software iSCSI configuration
- Storage rescans and VMFS datastore creation
"""

import logging
import socket
import ssl
from typing import List, Optional

from pyVim.connect import Disconnect, SmartConnect
from pyVmomi import vim, vmodl

from array_orchestrator.config import settings
from array_orchestrator.errors import NotFoundError, RemoteOperationError
from array_orchestrator.identifiers import split_wwns, wwn_from_port_number
from array_orchestrator.models import (
    ComputeCredentials,
    ComputeHost,
    Datastore,
    DatastoreKind,
    HbaInfo,
    HbaKind,
)
from array_orchestrator.vsphere.faults import describe_vim_fault

logger = logging.getLogger(__name__)

ISCSI_PORT = 3260

DATASTORE_KINDS = {
    "VMFS": DatastoreKind.VMFS,
    "VVOL": DatastoreKind.VVOL,
    "NFS": DatastoreKind.NFS,
    "NFS41": DatastoreKind.NFS,
    "VSAN": DatastoreKind.VSAN,
}


def _remote_error(operation: str, error: Exception) -> RemoteOperationError:
    message, info = describe_vim_fault(error)
    return RemoteOperationError(
        f"{operation} failed: {message}",
        error_code=info['fault_type'] if info else None,
    )


class VSphereCompute:
    """Compute-side collaborator backed by pyVmomi."""

    def __init__(self, verify_ssl: bool = False, port: Optional[int] = None):
        self.verify_ssl = verify_ssl
        self.port = port or settings.vsphere_port

    # =========================================================================
    # Sessions
    # =========================================================================

    def open_session(self, host_address: str, credentials: ComputeCredentials):
        """
        Connect directly to an ESXi host (or vCenter).

        Returns:
            pyVmomi ServiceInstance
        """
        context = ssl.SSLContext(ssl.PROTOCOL_TLS_CLIENT)
        if not self.verify_ssl:
            context.check_hostname = False
            context.verify_mode = ssl.CERT_NONE

        logger.info(f"Connecting to {host_address}...")
        old_timeout = socket.getdefaulttimeout()
        socket.setdefaulttimeout(settings.vsphere_connect_timeout)
        try:
            si = SmartConnect(
                host=host_address,
                user=credentials.username,
                pwd=credentials.password,
                port=self.port,
                sslContext=context,
            )
        except (vmodl.MethodFault, OSError) as e:
            raise _remote_error(f"Connecting to {host_address}", e) from e
        finally:
            socket.setdefaulttimeout(old_timeout)

        logger.info(f"Connected to {host_address}")
        return si

    def close_session(self, si) -> None:
        Disconnect(si)

    def get_host(self, si) -> ComputeHost:
        """Return the ESXi host behind a direct host session."""
        content = si.RetrieveContent()
        view = content.viewManager.CreateContainerView(content.rootFolder, [vim.HostSystem], True)
        try:
            hosts = list(view.view)
        finally:
            view.Destroy()
        if not hosts:
            raise NotFoundError("Session does not expose a HostSystem")
        return self.describe_host(hosts[0])

    def describe_host(self, host_obj) -> ComputeHost:
        """Build a ComputeHost from a vim.HostSystem."""
        hbas = self._hbas(host_obj)
        fc_ids = "".join(hba.identifier for hba in hbas if hba.kind == HbaKind.FIBRE_CHANNEL)
        try:
            dns_name = host_obj.config.network.dnsConfig.hostName
        except AttributeError:
            dns_name = None
        return ComputeHost(
            name=host_obj.name,
            hostname=dns_name or host_obj.name,
            iqns=[hba.identifier for hba in hbas if hba.kind == HbaKind.ISCSI and hba.identifier],
            wwns=split_wwns(fc_ids),
            ref=host_obj,
        )

    # =========================================================================
    # Storage adapters
    # =========================================================================

    def _hbas(self, host_obj) -> List[HbaInfo]:
        storage_dev = host_obj.config.storageDevice if host_obj.config else None
        if not storage_dev:
            return []

        hbas = []
        for hba in storage_dev.hostBusAdapter or []:
            if isinstance(hba, vim.host.FibreChannelHba):
                hbas.append(HbaInfo(
                    device=hba.device,
                    kind=HbaKind.FIBRE_CHANNEL,
                    identifier=wwn_from_port_number(hba.portWorldWideName),
                ))
            elif isinstance(hba, vim.host.InternetScsiHba):
                hbas.append(HbaInfo(device=hba.device, kind=HbaKind.ISCSI, identifier=hba.iScsiName or ""))
            else:
                hbas.append(HbaInfo(device=hba.device, kind=HbaKind.OTHER))
        return hbas

    def list_hbas(self, compute_host: ComputeHost, kind: HbaKind) -> List[HbaInfo]:
        return [hba for hba in self._hbas(compute_host.ref) if hba.kind == kind]

    def enable_software_iscsi(self, compute_host: ComputeHost) -> None:
        storage_system = compute_host.ref.configManager.storageSystem
        if storage_system.storageDeviceInfo.softwareInternetScsiEnabled:
            return
        logger.info(f"Enabling software iSCSI on {compute_host.name}")
        try:
            storage_system.UpdateSoftwareInternetScsiEnabled(True)
        except vmodl.MethodFault as e:
            raise _remote_error(f"Enabling software iSCSI on {compute_host.name}", e) from e

    def add_iscsi_target(self, compute_host: ComputeHost, hba_device: str, address: str) -> None:
        storage_system = compute_host.ref.configManager.storageSystem
        target = vim.host.InternetScsiHba.SendTarget(address=address, port=ISCSI_PORT)
        logger.info(f"Adding iSCSI send target {address} to {hba_device} on {compute_host.name}")
        try:
            storage_system.AddInternetScsiSendTargets(iScsiHbaDevice=hba_device, targets=[target])
        except vmodl.MethodFault as e:
            raise _remote_error(f"Adding iSCSI target {address}", e) from e

    def set_iscsi_parameter(self, compute_host: ComputeHost, hba_device: str, address: str, key: str, value) -> None:
        storage_system = compute_host.ref.configManager.storageSystem
        target_set = vim.host.InternetScsiHba.TargetSet(
            sendTargets=[vim.host.InternetScsiHba.SendTarget(address=address, port=ISCSI_PORT)]
        )
        option = vim.host.InternetScsiHba.ParamValue(key=key, value=value)
        try:
            storage_system.UpdateInternetScsiAdvancedOptions(
                iScsiHbaDevice=hba_device, targetSet=target_set, options=[option]
            )
        except vmodl.MethodFault as e:
            raise _remote_error(f"Setting iSCSI {key} on {address}", e) from e

    def rescan_storage(self, compute_host: ComputeHost) -> None:
        storage_system = compute_host.ref.configManager.storageSystem
        logger.info(f"Rescanning storage on {compute_host.name}")
        try:
            storage_system.RescanAllHba()
            storage_system.RescanVmfs()
        except vmodl.MethodFault as e:
            raise _remote_error(f"Rescanning storage on {compute_host.name}", e) from e

    # =========================================================================
    # Datastores
    # =========================================================================

    def create_vmfs_datastore(self, compute_host: ComputeHost, name: str, disk_path: str) -> Datastore:
        """
        Format a device as VMFS and mount it as a datastore.

        Args:
            compute_host: Host that sees the device
            name: Datastore name
            disk_path: /vmfs/devices/disks/naa.* path of the device
        """
        ds_system = compute_host.ref.configManager.datastoreSystem
        try:
            options = ds_system.QueryVmfsDatastoreCreateOptions(devicePath=disk_path)
            if not options:
                raise NotFoundError(f"{disk_path} is not available for VMFS on {compute_host.name}")
            spec = options[0].spec
            spec.vmfs.volumeName = name
            logger.info(f"Creating VMFS datastore {name} on {disk_path}")
            ds_obj = ds_system.CreateVmfsDatastore(spec=spec)
        except vim.fault.NotFound as e:
            raise NotFoundError(f"{disk_path} is not visible on {compute_host.name}") from e
        except vmodl.MethodFault as e:
            raise _remote_error(f"Creating datastore {name}", e) from e
        return datastore_from_vim(ds_obj)

    def remove_datastore(self, compute_host: ComputeHost, datastore: Datastore) -> None:
        ds_system = compute_host.ref.configManager.datastoreSystem
        logger.info(f"Removing datastore {datastore.name} from {compute_host.name}")
        try:
            ds_system.RemoveDatastore(datastore=datastore.ref)
        except vmodl.MethodFault as e:
            raise _remote_error(f"Removing datastore {datastore.name}", e) from e

    def get_datastores(self, scope) -> List[Datastore]:
        """Datastores visible from a host, cluster or datacenter object."""
        return [datastore_from_vim(ds) for ds in scope.datastore]

    # =========================================================================
    # Clusters
    # =========================================================================

    def list_cluster_hosts(self, cluster) -> List[ComputeHost]:
        return [self.describe_host(host_obj) for host_obj in cluster.host]


def datastore_from_vim(ds_obj) -> Datastore:
    """Convert a vim.Datastore into a Datastore model."""
    ds_type = (ds_obj.summary.type or "").upper()
    kind = DATASTORE_KINDS.get(ds_type, DatastoreKind.OTHER)

    disk_identifier = None
    storage_array_uuid = None
    info = ds_obj.info
    if kind == DatastoreKind.VMFS and isinstance(info, vim.host.VmfsDatastoreInfo):
        extents = info.vmfs.extent if info.vmfs else []
        if extents:
            disk_identifier = extents[0].diskName
    elif kind == DatastoreKind.VVOL:
        vvol_ds = getattr(info, 'vvolDS', None)
        arrays = vvol_ds.storageArray if vvol_ds else []
        if arrays:
            storage_array_uuid = arrays[0].uuid

    return Datastore(
        name=ds_obj.summary.name,
        kind=kind,
        disk_identifier=disk_identifier,
        storage_array_uuid=storage_array_uuid,
        ref=ds_obj,
    )
