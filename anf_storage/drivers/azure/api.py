"""Azure NetApp Files backend models and client interface.

The concrete client (REST transport, authentication and resource cache)
lives outside this package; the driver only depends on ``AzureClient``.
"""

import abc
import enum
from dataclasses import dataclass, field
from datetime import datetime
from typing import Dict, List, Optional, Tuple

from anf_storage import exceptions

# Timeouts in seconds
VOLUME_CREATE_TIMEOUT = 10
SNAPSHOT_TIMEOUT = 240
DEFAULT_TIMEOUT = 120
DEFAULT_SDK_TIMEOUT = 30
DEFAULT_MAX_CACHE_AGE = 600

# Azure rejects label values longer than this
MAX_LABEL_LENGTH = 255

PROTOCOL_TYPE_NFSV3 = "NFSv3"
PROTOCOL_TYPE_NFSV41 = "NFSv4.1"
PROTOCOL_TYPE_CIFS = "CIFS"

SERVICE_LEVEL_STANDARD = "Standard"
SERVICE_LEVEL_PREMIUM = "Premium"
SERVICE_LEVEL_ULTRA = "Ultra"

NETWORK_FEATURES_BASIC = "Basic"
NETWORK_FEATURES_STANDARD = "Standard"

MOUNT_OPTION_KERBEROS5 = "sec=krb5"
MOUNT_OPTION_KERBEROS5I = "sec=krb5i"
MOUNT_OPTION_KERBEROS5P = "sec=krb5p"

KERBEROS_MODES = (MOUNT_OPTION_KERBEROS5, MOUNT_OPTION_KERBEROS5I, MOUNT_OPTION_KERBEROS5P)

# Optional backend capabilities reported by AzureClient.has_feature
FEATURE_UNIX_PERMISSIONS = "ANFUnixPermissions"


class ProvisioningState(str, enum.Enum):
    ACCEPTED = "Accepted"
    CREATING = "Creating"
    AVAILABLE = "Available"
    ERROR = "Error"
    DELETING = "Deleting"
    DELETED = "Deleted"
    MOVING = "Moving"
    REVERTING = "Reverting"

    def __str__(self):
        return self.value


def create_volume_id(
    subscription_id: str, resource_group: str, netapp_account: str, capacity_pool: str, name: str
) -> str:
    """Build the fully qualified Azure resource ID of a volume."""
    return (
        f"/subscriptions/{subscription_id}/resourceGroups/{resource_group}"
        f"/providers/Microsoft.NetApp/netAppAccounts/{netapp_account}"
        f"/capacityPools/{capacity_pool}/volumes/{name}"
    )


@dataclass
class ClientConfig:
    subscription_id: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    location: str = ""
    sdk_timeout: int = DEFAULT_SDK_TIMEOUT
    max_cache_age: int = DEFAULT_MAX_CACHE_AGE


@dataclass
class CapacityPool:
    resource_group: str
    netapp_account: str
    name: str
    location: str = ""
    service_level: str = ""
    provisioning_state: str = ProvisioningState.AVAILABLE.value
    id: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.resource_group}/{self.netapp_account}/{self.name}"

    @property
    def account_full_name(self) -> str:
        return f"{self.resource_group}/{self.netapp_account}"


@dataclass
class Subnet:
    resource_group: str
    virtual_network: str
    name: str
    location: str = ""
    id: str = ""

    @property
    def full_name(self) -> str:
        return f"{self.resource_group}/{self.virtual_network}/{self.name}"

    @property
    def virtual_network_full_name(self) -> str:
        return f"{self.resource_group}/{self.virtual_network}"


@dataclass
class ExportRule:
    allowed_clients: str = ""
    cifs: bool = False
    nfsv3: bool = False
    nfsv41: bool = False
    rule_index: int = 1
    unix_read_only: bool = False
    unix_read_write: bool = False
    kerberos5_read_only: bool = False
    kerberos5_read_write: bool = False
    kerberos5i_read_only: bool = False
    kerberos5i_read_write: bool = False
    kerberos5p_read_only: bool = False
    kerberos5p_read_write: bool = False


@dataclass
class ExportPolicy:
    rules: List[ExportRule] = field(default_factory=list)


@dataclass
class MountTarget:
    mount_target_id: str = ""
    file_system_id: str = ""
    ip_address: str = ""
    server_fqdn: str = ""


@dataclass
class FileSystem:
    """An ANF volume as seen by the backend."""

    id: str = ""
    resource_group: str = ""
    netapp_account: str = ""
    capacity_pool: str = ""
    name: str = ""
    location: str = ""
    creation_token: str = ""
    provisioning_state: str = ""
    protocol_types: List[str] = field(default_factory=list)
    quota_in_bytes: int = 0
    service_level: str = ""
    snapshot_directory: bool = False
    subnet_id: str = ""
    unix_permissions: str = ""
    network_features: str = ""
    kerberos_enabled: bool = False
    export_policy: ExportPolicy = field(default_factory=ExportPolicy)
    mount_targets: List[MountTarget] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)

    @property
    def full_name(self) -> str:
        return f"{self.resource_group}/{self.netapp_account}/{self.capacity_pool}/{self.name}"

    @property
    def capacity_pool_full_name(self) -> str:
        return f"{self.resource_group}/{self.netapp_account}/{self.capacity_pool}"


@dataclass
class Snapshot:
    id: str = ""
    resource_group: str = ""
    netapp_account: str = ""
    capacity_pool: str = ""
    volume: str = ""
    name: str = ""
    location: str = ""
    created: Optional[datetime] = None
    snapshot_id: str = ""
    provisioning_state: str = ""


@dataclass
class FilesystemCreateRequest:
    resource_group: str
    netapp_account: str
    capacity_pool: str
    name: str
    subnet_id: str
    creation_token: str
    protocol_types: List[str]
    quota_in_bytes: int
    snapshot_directory: bool = False
    labels: Dict[str, str] = field(default_factory=dict)
    export_policy: Optional[ExportPolicy] = None
    unix_permissions: str = ""
    network_features: str = ""
    kerberos_enabled: bool = False
    snapshot_id: str = ""


class AzureClient(abc.ABC):
    """Interface to Azure NetApp Files.

    Implementations keep a cache of discovered resources (capacity pools,
    subnets, volumes) that is refreshed by ``refresh_azure_resources``.
    Lookup methods raise ``VolumeNotFound``/``SnapshotNotFound`` for
    missing objects; other failures raise ``BackendError``.
    """

    @abc.abstractmethod
    def refresh_azure_resources(self) -> None:
        """Refresh the resource cache if it is older than the max cache age."""

    @abc.abstractmethod
    def capacity_pools(self) -> List[CapacityPool]:
        """Return all discovered capacity pools in discovery order."""

    @abc.abstractmethod
    def subnets(self) -> List[Subnet]:
        """Return all discovered subnets delegated to ANF."""

    @abc.abstractmethod
    def volumes(self) -> List[FileSystem]:
        """Return all volumes in the discovered capacity pools."""

    @abc.abstractmethod
    def volume_by_id(self, volume_id: str) -> FileSystem:
        pass

    @abc.abstractmethod
    def volume_by_creation_token(self, creation_token: str) -> FileSystem:
        pass

    @abc.abstractmethod
    def create_volume(self, request: FilesystemCreateRequest) -> FileSystem:
        """Submit a volume create; the result is not final until Available."""

    @abc.abstractmethod
    def modify_volume(
        self,
        volume: FileSystem,
        labels: Dict[str, str],
        unix_permissions: Optional[str] = None,
        snapshot_dir: Optional[bool] = None,
        export_rule: Optional[ExportRule] = None,
    ) -> None:
        pass

    @abc.abstractmethod
    def resize_volume(self, volume: FileSystem, new_size_bytes: int) -> None:
        pass

    @abc.abstractmethod
    def delete_volume(self, volume: FileSystem) -> None:
        pass

    @abc.abstractmethod
    def snapshots_for_volume(self, volume: FileSystem) -> List[Snapshot]:
        pass

    @abc.abstractmethod
    def snapshot_for_volume(self, volume: FileSystem, snapshot_name: str) -> Snapshot:
        pass

    @abc.abstractmethod
    def create_snapshot(self, volume: FileSystem, snapshot_name: str) -> Snapshot:
        pass

    @abc.abstractmethod
    def delete_snapshot(self, volume: FileSystem, snapshot: Snapshot) -> None:
        pass

    @abc.abstractmethod
    def restore_snapshot(self, volume: FileSystem, snapshot: Snapshot) -> None:
        pass

    @abc.abstractmethod
    def has_feature(self, feature: str) -> bool:
        """Report whether an optional backend capability is available."""

    def volume(self, volume_config) -> FileSystem:
        """Look up a volume by its backend ID, falling back to its creation token."""
        if volume_config.internal_id:
            return self.volume_by_id(volume_config.internal_id)
        return self.volume_by_creation_token(volume_config.internal_name)

    def volume_exists(self, volume_config) -> Tuple[bool, Optional[FileSystem]]:
        try:
            return True, self.volume(volume_config)
        except exceptions.VolumeNotFound:
            return False, None

    def volume_exists_by_id(self, volume_id: str) -> Tuple[bool, Optional[FileSystem]]:
        try:
            return True, self.volume_by_id(volume_id)
        except exceptions.VolumeNotFound:
            return False, None
