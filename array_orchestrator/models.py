"""
Pydantic models for compute-side and storage-side objects.
"""

from enum import Enum
from typing import Any, List, Optional, Tuple

from pydantic import BaseModel, Field


class Protocol(str, Enum):
    """Block protocol used to present storage to compute hosts."""
    FIBRE_CHANNEL = "fibre_channel"
    ISCSI = "iscsi"


class HbaKind(str, Enum):
    FIBRE_CHANNEL = "fibre_channel"
    ISCSI = "iscsi"
    OTHER = "other"


class DatastoreKind(str, Enum):
    VMFS = "VMFS"
    VVOL = "VVOL"
    NFS = "NFS"
    VSAN = "VSAN"
    OTHER = "OTHER"


class ArrayCredentials(BaseModel):
    """Either an API token or a username/password pair."""
    api_token: Optional[str] = Field(default=None, repr=False)
    username: Optional[str] = None
    password: Optional[str] = Field(default=None, repr=False)


class ComputeCredentials(BaseModel):
    username: str = "root"
    password: str = Field(default="", repr=False)


class ArrayIdentity(BaseModel):
    """Identity reported by a storage array."""
    serial: str  # array id, matched against VVol storage array UUIDs
    array_name: str = ""
    version: str = ""

    @property
    def version_tuple(self) -> Tuple[int, ...]:
        parts = []
        for part in self.version.split("."):
            if not part.isdigit():
                break
            parts.append(int(part))
        return tuple(parts)


class HbaInfo(BaseModel):
    """Storage adapter on a compute host."""
    device: str  # vmhba2
    kind: HbaKind
    identifier: str = ""  # WWN hex for FC, IQN for iSCSI


class ComputeHost(BaseModel):
    """Identity of an ESXi host as seen by the compute platform."""
    name: str
    hostname: str
    iqns: List[str] = []
    wwns: List[str] = []
    ref: Optional[Any] = Field(default=None, exclude=True, repr=False)


class StorageHost(BaseModel):
    """Host object on a storage array."""
    name: str
    iqns: List[str] = []
    wwns: List[str] = []
    host_group: Optional[str] = None


class StorageHostGroup(BaseModel):
    """Named collection of storage hosts on one array."""
    name: str
    hosts: List[str] = []


class Volume(BaseModel):
    name: str
    serial: str
    size_bytes: int = 0


class NetworkInterface(BaseModel):
    """Array network interface (ct0.eth4, ...)."""
    name: str
    address: Optional[str] = None
    services: List[str] = []
    enabled: bool = False


class Datastore(BaseModel):
    """Compute-side datastore."""
    name: str
    kind: DatastoreKind
    disk_identifier: Optional[str] = None  # first VMFS extent, naa.*
    storage_array_uuid: Optional[str] = None  # VVol backing array, com.purestorage:<uuid>
    ref: Optional[Any] = Field(default=None, exclude=True, repr=False)
