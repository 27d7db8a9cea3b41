"""Volume and snapshot descriptors exchanged with the host orchestrator."""

from dataclasses import dataclass, field
from typing import Optional

ORCHESTRATOR_API_VERSION = "1"

# Volume protocols
FILE = "file"

# Access modes
READ_WRITE_MANY = "ReadWriteMany"

# Snapshot states
SNAPSHOT_STATE_ONLINE = "online"

# Timestamp format used for snapshot creation times
TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"

# Name format for snapshots created implicitly (e.g. clone sources)
SNAPSHOT_NAME_FORMAT = "%Y%m%dT%H%M%SZ"


@dataclass
class VolumeAccessInfo:
    nfs_server_ip: str = ""
    nfs_path: str = ""
    smb_server: str = ""
    smb_path: str = ""


@dataclass
class VolumeConfig:
    """A volume as known to the host orchestrator.

    Attributes:
        name: External (display) name
        internal_name: Backend creation token; immutable once created
        internal_id: Backend-assigned identifier, authoritative once set
        size: Requested size; holds the size in bytes after create
        service_level: Requested service level (blank for pool default)
        snapshot_dir: "true"/"false"/"" snapshot directory visibility
        unix_permissions: Octal permissions (e.g. "0755")
        export_rule: Comma-separated client IPs/CIDRs
        kerberos: Kerberos security flavor applied at create
        mount_options: Mount options (e.g. "nfsvers=4.1")
        read_only_clone: Clone realized as a path into the source snapshot
        import_not_managed: Import without bringing under management
    """

    name: str = ""
    internal_name: str = ""
    internal_id: str = ""
    version: str = ORCHESTRATOR_API_VERSION
    size: str = ""
    protocol: str = ""
    service_level: str = ""
    snapshot_dir: str = ""
    unix_permissions: str = ""
    export_rule: str = ""
    kerberos: str = ""
    mount_options: str = ""
    snapshot_policy: str = ""
    export_policy: str = ""
    storage_class: str = ""
    access_mode: str = ""
    file_system: str = ""
    clone_source_volume: str = ""
    clone_source_volume_internal: str = ""
    clone_source_snapshot: str = ""
    clone_source_snapshot_internal: str = ""
    read_only_clone: bool = False
    import_original_name: str = ""
    import_not_managed: bool = False
    access_info: VolumeAccessInfo = field(default_factory=VolumeAccessInfo)


@dataclass
class VolumePublishInfo:
    nfs_server_ip: str = ""
    nfs_path: str = ""
    smb_server: str = ""
    smb_path: str = ""
    filesystem_type: str = ""
    mount_options: str = ""


@dataclass
class SnapshotConfig:
    name: str = ""
    internal_name: str = ""
    volume_name: str = ""
    volume_internal_name: str = ""
    version: str = ORCHESTRATOR_API_VERSION


@dataclass
class Snapshot:
    config: SnapshotConfig
    created: str = ""
    size_bytes: int = 0
    state: str = SNAPSHOT_STATE_ONLINE


# Pool name reported for volumes discovered on the backend
UNSET_POOL = ""


@dataclass
class VolumeExternal:
    config: VolumeConfig
    pool: str = UNSET_POOL


@dataclass
class VolumeExternalWrapper:
    volume: Optional[VolumeExternal] = None
    error: Optional[Exception] = None
