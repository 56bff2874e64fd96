"""In-memory stand-ins for the FlashArray and vSphere collaborators."""

from typing import Dict, List, Optional

from array_orchestrator.errors import ConflictError, NotFoundError, RemoteOperationError
from array_orchestrator.models import (
    ArrayIdentity,
    ComputeHost,
    Datastore,
    DatastoreKind,
    HbaInfo,
    HbaKind,
    NetworkInterface,
    StorageHost,
    StorageHostGroup,
    Volume,
)


class FakeArray:
    """Array connection backed by dicts. `fail_on` maps method name -> exception."""

    def __init__(self, endpoint: str, serial: str, volumes: Optional[List[Volume]] = None):
        self.endpoint = endpoint
        self.identity = ArrayIdentity(serial=serial, array_name=endpoint, version="6.1.0")
        self.volumes: Dict[str, Volume] = {v.name: v for v in (volumes or [])}
        self.destroyed: Dict[str, Volume] = {}
        self.hosts: Dict[str, StorageHost] = {}
        self.groups: Dict[str, StorageHostGroup] = {}
        self.connections: set = set()
        self.interfaces: List[NetworkInterface] = []
        self.fail_on: Dict[str, Exception] = {}
        self.calls: List[str] = []
        self.closed = False
        self._next_serial = 1

    @property
    def serial(self):
        return self.identity.serial

    def _call(self, name):
        self.calls.append(name)
        if name in self.fail_on:
            raise self.fail_on[name]

    def close(self):
        self.closed = True

    def get_array_identity(self, refresh=False):
        self._call("get_array_identity")
        return self.identity

    def list_network_interfaces(self):
        self._call("list_network_interfaces")
        return list(self.interfaces)

    def list_volumes(self):
        self._call("list_volumes")
        return list(self.volumes.values())

    def create_volume(self, name, size_bytes):
        self._call("create_volume")
        if name in self.volumes:
            raise ConflictError(f"{name}: Volume already exists.")
        serial = f"{self._next_serial:024X}"
        self._next_serial += 1
        volume = Volume(name=name, serial=serial, size_bytes=size_bytes)
        self.volumes[name] = volume
        return volume

    def delete_volume(self, name, eradicate=False):
        self._call("delete_volume")
        if name not in self.volumes:
            raise NotFoundError(f"{name}: Volume does not exist.")
        if any(vol == name for vol, _ in self.connections):
            raise RemoteOperationError(f"{name}: Volume has connections.")
        self.destroyed[name] = self.volumes.pop(name)
        if eradicate:
            self.destroyed.pop(name)

    def connect_volume_to_group(self, volume_name, group_name):
        self._call("connect_volume_to_group")
        self.connections.add((volume_name, group_name))

    def disconnect_volume_from_group(self, volume_name, group_name):
        self._call("disconnect_volume_from_group")
        self.connections.discard((volume_name, group_name))

    def list_hosts(self):
        self._call("list_hosts")
        return [host.model_copy() for host in self.hosts.values()]

    def add_host(self, name, iqns=None, wwns=None, host_group=None):
        """Seed a pre-existing host (test setup only)."""
        self.hosts[name] = StorageHost(name=name, iqns=iqns or [], wwns=wwns or [], host_group=host_group)
        if host_group:
            self.groups.setdefault(host_group, StorageHostGroup(name=host_group)).hosts.append(name)

    def create_host(self, name, iqns=None, wwns=None):
        self._call("create_host")
        if name in self.hosts:
            raise ConflictError(f"{name}: Host already exists.")
        host = StorageHost(name=name, iqns=list(iqns or []), wwns=list(wwns or []))
        self.hosts[name] = host
        return host.model_copy()

    def delete_host(self, name):
        self._call("delete_host")
        if name not in self.hosts:
            raise NotFoundError(f"{name}: Host does not exist.")
        group = self.hosts.pop(name).host_group
        if group and group in self.groups:
            self.groups[group].hosts.remove(name)

    def create_host_group(self, name, host_names):
        self._call("create_host_group")
        if name in self.groups:
            raise ConflictError(f"{name}: Host group already exists.")
        self.groups[name] = StorageHostGroup(name=name, hosts=list(host_names))
        for host in host_names:
            self.hosts[host].host_group = name
        return self.groups[name].model_copy()

    def get_host_group(self, name):
        self._call("get_host_group")
        if name not in self.groups:
            raise NotFoundError(f"{name}: Host group does not exist.")
        return self.groups[name].model_copy(deep=True)

    def delete_host_group(self, name):
        self._call("delete_host_group")
        if name not in self.groups:
            raise NotFoundError(f"{name}: Host group does not exist.")
        del self.groups[name]

    def add_hosts_to_group(self, group_name, host_names):
        self._call("add_hosts_to_group")
        for host in host_names:
            self.groups[group_name].hosts.append(host)
            self.hosts[host].host_group = group_name


class FakeCluster:
    def __init__(self, name, hosts):
        self.name = name
        self.hosts = hosts


class FakeSession:
    def __init__(self, address):
        self.address = address
        self.open = True


class FakeCompute:
    """Compute collaborator. `hosts` maps address -> ComputeHost."""

    def __init__(self, hosts: Optional[Dict[str, ComputeHost]] = None):
        self.hosts = hosts or {}
        self.sessions: List[FakeSession] = []
        self.fail_on: Dict[str, Exception] = {}
        self.rescanned: List[str] = []
        self.datastores: Dict[str, Datastore] = {}
        self.iscsi_enabled: List[str] = []
        self.iscsi_targets: List[tuple] = []
        self.iscsi_params: List[tuple] = []
        self.hbas: Dict[str, List[HbaInfo]] = {}

    def _call(self, name):
        if name in self.fail_on:
            raise self.fail_on[name]

    @property
    def open_sessions(self):
        return [session for session in self.sessions if session.open]

    def open_session(self, host_address, credentials):
        self._call("open_session")
        if host_address not in self.hosts:
            raise RemoteOperationError(f"Connecting to {host_address} failed: Host Unreachable")
        session = FakeSession(host_address)
        self.sessions.append(session)
        return session

    def close_session(self, session):
        session.open = False

    def get_host(self, session):
        self._call("get_host")
        return self.hosts[session.address]

    def list_hbas(self, compute_host, kind):
        return [hba for hba in self.hbas.get(compute_host.name, []) if hba.kind == kind]

    def enable_software_iscsi(self, compute_host):
        self.iscsi_enabled.append(compute_host.name)
        self.hbas.setdefault(compute_host.name, []).append(
            HbaInfo(device="vmhba64", kind=HbaKind.ISCSI, identifier=f"iqn.1998-01.com.vmware:{compute_host.hostname}")
        )

    def add_iscsi_target(self, compute_host, hba_device, address):
        self.iscsi_targets.append((compute_host.name, hba_device, address))

    def set_iscsi_parameter(self, compute_host, hba_device, address, key, value):
        self.iscsi_params.append((address, key, value))

    def rescan_storage(self, compute_host):
        self._call("rescan_storage")
        self.rescanned.append(compute_host.name)

    def create_vmfs_datastore(self, compute_host, name, disk_path):
        self._call("create_vmfs_datastore")
        datastore = Datastore(name=name, kind=DatastoreKind.VMFS, disk_identifier=disk_path.rsplit("/", 1)[-1])
        self.datastores[name] = datastore
        return datastore

    def remove_datastore(self, compute_host, datastore):
        self._call("remove_datastore")
        self.datastores.pop(datastore.name, None)

    def list_cluster_hosts(self, cluster):
        return list(cluster.hosts)


def esxi_host(number: int, wwns=None, iqns=None) -> ComputeHost:
    hostname = f"esx{number:02d}.lab.local"
    if wwns is None and iqns is None:
        wwns = [f"2100000e1e{number:06x}", f"2100000e1f{number:06x}"]
    return ComputeHost(name=hostname, hostname=hostname, wwns=wwns or [], iqns=iqns or [])
