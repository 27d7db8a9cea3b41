"""Configuration options for the Azure NetApp Files driver."""

import copy
import json
import re
from dataclasses import dataclass, field, fields
from typing import Any, Dict, List, Optional

from oslo_config import cfg
from oslo_log import log as logging

from anf_storage import exceptions
from anf_storage.drivers import common
from anf_storage.drivers.azure import api
from anf_storage.storage import attributes as sa

LOG = logging.getLogger(__name__)

# Configuration group name
CONF_GROUP = "anf_storage"

DRIVER_NAME = "azure-netapp-files"

DEFAULT_UNIX_PERMISSIONS = ""
PREVIEW_UNIX_PERMISSIONS = "0777"
DEFAULT_NFS_MOUNT_OPTIONS = "nfsvers=3"
DEFAULT_KERBEROS_NFS_MOUNT_OPTIONS = "nfsvers=4.1"
DEFAULT_SNAPSHOT_DIR = "false"
DEFAULT_LIMIT_VOLUME_SIZE = ""
DEFAULT_EXPORT_RULE = "0.0.0.0/0"
DEFAULT_VOLUME_SIZE = "107374182400"
# Some regions may never support network features, so leave it blank
DEFAULT_NETWORK_FEATURES = ""


def _get_anf_opts():
    """Get Azure NetApp Files driver configuration options.

    Returns:
        List of oslo_config options
    """
    return [
        # Azure identity
        cfg.StrOpt(
            "anf_subscription_id",
            default=None,
            help="Azure subscription ID",
        ),
        cfg.StrOpt(
            "anf_tenant_id",
            default=None,
            help="Azure AD tenant ID",
        ),
        cfg.StrOpt(
            "anf_client_id",
            default=None,
            help="Azure AD application (client) ID",
        ),
        cfg.StrOpt(
            "anf_client_secret",
            default=None,
            secret=True,
            help="Azure AD application client secret",
        ),
        cfg.DictOpt(
            "anf_credentials",
            default={},
            secret=True,
            help=(
                "Reference to an external secret holding the client credentials, "
                "as 'name:<secret name>,type:<secret type>'"
            ),
        ),
        cfg.StrOpt(
            "anf_location",
            default=None,
            help="Azure region in which volumes are discovered and created",
        ),
        # Backend identity
        cfg.StrOpt(
            "anf_backend_name",
            default=None,
            help=(
                "Backend name reported to the orchestrator. Defaults to the driver "
                "name followed by the first characters of the client ID."
            ),
        ),
        cfg.StrOpt(
            "anf_driver_context",
            default=common.CONTEXT_CSI,
            choices=[common.CONTEXT_CSI, common.CONTEXT_DOCKER],
            help=(
                "Orchestrator context. 'docker' uses longer timeouts, since it cannot "
                "retry, and reversible prefixed internal volume names."
            ),
        ),
        cfg.StrOpt(
            "anf_storage_prefix",
            default=None,
            help=(
                "Prefix for internal volume names. Letters and hyphens only; "
                "defaults to a context-specific prefix."
            ),
        ),
        # Volume defaults
        cfg.StrOpt(
            "anf_size",
            default=None,
            help="Default volume size (e.g. 100Gi or a byte count)",
        ),
        cfg.StrOpt(
            "anf_unix_permissions",
            default=None,
            help="Default octal unix permissions for NFS volumes (e.g. 0755)",
        ),
        cfg.BoolOpt(
            "anf_preview_unix_permissions",
            default=False,
            help=(
                "Default unix permissions to 0777 when no value is configured and "
                "the backend reports the unix permissions capability"
            ),
        ),
        cfg.StrOpt(
            "anf_nfs_mount_options",
            default=None,
            help="Default NFS mount options (default nfsvers=3, or nfsvers=4.1 with kerberos)",
        ),
        cfg.StrOpt(
            "anf_snapshot_dir",
            default=None,
            help="Make the .snapshot directory visible to clients ('true' or 'false')",
        ),
        cfg.StrOpt(
            "anf_limit_volume_size",
            default=None,
            help="Maximum volume size that may be requested (blank for no limit)",
        ),
        cfg.StrOpt(
            "anf_export_rule",
            default=None,
            help="Comma-separated IP addresses or CIDRs allowed to mount NFS volumes",
        ),
        cfg.StrOpt(
            "anf_network_features",
            default=None,
            help="Network features for new volumes: 'Basic' or 'Standard'",
        ),
        cfg.StrOpt(
            "anf_nas_type",
            default=sa.NFS,
            choices=[sa.NFS, sa.SMB],
            help="NAS protocol family for new volumes",
        ),
        cfg.StrOpt(
            "anf_kerberos",
            default=None,
            choices=list(api.KERBEROS_MODES),
            help="Kerberos security flavor for NFSv4.1 volumes",
        ),
        cfg.StrOpt(
            "anf_service_level",
            default=None,
            help="Service level of capacity pools to use: Standard, Premium or Ultra",
        ),
        # Placement
        cfg.StrOpt(
            "anf_virtual_network",
            default=None,
            help="Virtual network name or 'resourceGroup/virtualNetwork'",
        ),
        cfg.StrOpt(
            "anf_subnet",
            default=None,
            help="Subnet name or 'resourceGroup/virtualNetwork/subnet'",
        ),
        cfg.ListOpt(
            "anf_resource_groups",
            default=[],
            help="Resource groups that may host volumes",
        ),
        cfg.ListOpt(
            "anf_netapp_accounts",
            default=[],
            help="NetApp accounts (name or 'resourceGroup/account') that may host volumes",
        ),
        cfg.ListOpt(
            "anf_capacity_pools",
            default=[],
            help=(
                "Capacity pools (name or 'resourceGroup/account/pool') that may host "
                "volumes. Pools are tried in order."
            ),
        ),
        # Pool reporting
        cfg.DictOpt(
            "anf_labels",
            default={},
            help="Labels advertised on every storage pool and written onto volumes",
        ),
        cfg.StrOpt(
            "anf_region",
            default=None,
            help="Region advertised on storage pools",
        ),
        cfg.StrOpt(
            "anf_zone",
            default=None,
            help="Zone advertised on storage pools",
        ),
        cfg.MultiStrOpt(
            "anf_supported_topologies",
            default=[],
            help=(
                "Topology segments the storage pools are reachable from, one JSON "
                "object per entry, e.g. "
                '{"topology.kubernetes.io/region": "eastus", '
                '"topology.kubernetes.io/zone": "eastus-1"}'
            ),
        ),
        cfg.MultiStrOpt(
            "anf_virtual_pools",
            default=[],
            help=(
                "Virtual pool definitions, one JSON object per entry. Keys override "
                "the backend-wide values, e.g. "
                '{"serviceLevel": "Premium", "capacityPools": ["pool1"], '
                '"labels": {"performance": "gold"}}'
            ),
        ),
        # Timeouts
        cfg.IntOpt(
            "anf_volume_create_timeout",
            default=None,
            min=1,
            help="Seconds to wait for a new volume to become available",
        ),
        cfg.IntOpt(
            "anf_sdk_timeout",
            default=api.DEFAULT_SDK_TIMEOUT,
            min=1,
            help="Azure API request timeout in seconds",
        ),
        cfg.IntOpt(
            "anf_max_cache_age",
            default=api.DEFAULT_MAX_CACHE_AGE,
            min=0,
            help="Maximum age in seconds of the discovered resource cache",
        ),
        # Entitlements
        cfg.BoolOpt(
            "anf_acp_enabled",
            default=False,
            help="Enable the entitlement service required by gated features (e.g. kerberos)",
        ),
        cfg.StrOpt(
            "anf_acp_endpoint",
            default="http://127.0.0.1:8100",
            help="Entitlement service endpoint URL",
        ),
        cfg.IntOpt(
            "anf_acp_timeout",
            default=10,
            min=1,
            max=300,
            help="Entitlement service request timeout in seconds",
        ),
        cfg.IntOpt(
            "anf_acp_retry_count",
            default=3,
            min=0,
            max=10,
            help="Number of entitlement service retries for transient failures",
        ),
    ]


def register_opts(conf, group=None):
    """Register Azure NetApp Files driver options.

    Args:
        conf: oslo_config.cfg.ConfigOpts instance
        group: Configuration group name (default: CONF_GROUP)
    """
    conf.register_opts(_get_anf_opts(), group=group or CONF_GROUP)


def list_opts():
    """Return a list of driver options for oslo-config-generator.

    Returns:
        List of (group_name, options) tuples
    """
    return [
        (CONF_GROUP, _get_anf_opts()),
    ]


def get_anf_opts():
    """Get Azure NetApp Files driver options (public API)."""
    return _get_anf_opts()


class Configuration:
    """Group-scoped view of an oslo.config ConfigOpts object.

    Drivers register their options through ``append_config_values`` and
    read them as attributes.
    """

    def __init__(self, opts=None, config_group=CONF_GROUP, conf=None):
        self.conf = conf if conf is not None else cfg.CONF
        self.config_group = config_group
        if opts:
            self.append_config_values(opts)

    def append_config_values(self, opts):
        self.conf.register_opts(opts, group=self.config_group)

    def __getattr__(self, value):
        # Only called for names not found on the instance
        if value in ("conf", "config_group"):
            raise AttributeError(value)
        return getattr(getattr(self.conf, self.config_group), value)


_CAMEL_RE = re.compile(r"(?<!^)(?=[A-Z])")


def _snake_case(key: str) -> str:
    return _CAMEL_RE.sub("_", key).lower()


@dataclass
class VirtualPool:
    """Per-pool overrides of the backend-wide settings.

    Blank strings and None lists mean "inherit".
    """

    size: str = ""
    unix_permissions: str = ""
    service_level: str = ""
    snapshot_dir: str = ""
    export_rule: str = ""
    virtual_network: str = ""
    network_features: str = ""
    subnet: str = ""
    kerberos: str = ""
    nas_type: str = ""
    region: str = ""
    zone: str = ""
    resource_groups: Optional[List[str]] = None
    netapp_accounts: Optional[List[str]] = None
    capacity_pools: Optional[List[str]] = None
    labels: Dict[str, str] = field(default_factory=dict)
    supported_topologies: Optional[List[Dict[str, str]]] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "VirtualPool":
        known = {f.name for f in fields(cls)}
        values = {}
        for key, value in data.items():
            name = _snake_case(key)
            if name not in known:
                raise exceptions.ConfigurationError(
                    details=f"unknown virtual pool attribute: {key}"
                )
            values[name] = value
        return cls(**values)


def parse_virtual_pools(raw_pools) -> List[VirtualPool]:
    """Parse virtual pool definitions (JSON strings or dicts)."""
    pools = []
    for raw_pool in raw_pools or []:
        if isinstance(raw_pool, str):
            try:
                raw_pool = json.loads(raw_pool)
            except ValueError as e:
                raise exceptions.ConfigurationError(
                    details=f"could not decode virtual pool JSON; {e}"
                )
        if not isinstance(raw_pool, dict):
            raise exceptions.ConfigurationError(
                details="each virtual pool must be a JSON object"
            )
        vpool = VirtualPool.from_dict(raw_pool)
        if vpool.supported_topologies is not None:
            vpool.supported_topologies = parse_supported_topologies(vpool.supported_topologies)
        pools.append(vpool)
    return pools


def parse_supported_topologies(raw_topologies) -> List[Dict[str, str]]:
    """Parse topology segments (JSON strings or dicts of string labels)."""
    topologies = []
    for raw_topology in raw_topologies or []:
        if isinstance(raw_topology, str):
            try:
                raw_topology = json.loads(raw_topology)
            except ValueError as e:
                raise exceptions.ConfigurationError(
                    details=f"could not decode supported topology JSON; {e}"
                )
        if not isinstance(raw_topology, dict) or not all(
            isinstance(k, str) and isinstance(v, str) for k, v in raw_topology.items()
        ):
            raise exceptions.ConfigurationError(
                details="each supported topology must map label names to string values"
            )
        topologies.append(dict(raw_topology))
    return topologies


@dataclass
class AzureNASStorageDriverConfig:
    """Effective backend configuration of one driver instance."""

    subscription_id: str = ""
    tenant_id: str = ""
    client_id: str = ""
    client_secret: str = ""
    credentials: Dict[str, str] = field(default_factory=dict)
    location: str = ""
    backend_name: str = ""
    driver_context: str = common.CONTEXT_CSI
    storage_prefix: Optional[str] = None
    size: str = ""
    unix_permissions: str = ""
    preview_unix_permissions: bool = False
    nfs_mount_options: str = ""
    snapshot_dir: str = ""
    limit_volume_size: str = ""
    export_rule: str = ""
    network_features: str = ""
    nas_type: str = ""
    kerberos: str = ""
    service_level: str = ""
    virtual_network: str = ""
    subnet: str = ""
    resource_groups: List[str] = field(default_factory=list)
    netapp_accounts: List[str] = field(default_factory=list)
    capacity_pools: List[str] = field(default_factory=list)
    labels: Dict[str, str] = field(default_factory=dict)
    region: str = ""
    zone: str = ""
    supported_topologies: List[Dict[str, str]] = field(default_factory=list)
    storage: List[VirtualPool] = field(default_factory=list)
    volume_create_timeout: Optional[int] = None
    sdk_timeout: int = api.DEFAULT_SDK_TIMEOUT
    max_cache_age: int = api.DEFAULT_MAX_CACHE_AGE
    acp_enabled: bool = False
    acp_endpoint: str = ""
    acp_timeout: int = 10
    acp_retry_count: int = 3
    backend_pools: List[str] = field(default_factory=list)

    @classmethod
    def from_configuration(cls, configuration) -> "AzureNASStorageDriverConfig":
        """Build the driver config from ``anf_*`` configuration values."""

        def _str(name):
            return getattr(configuration, name) or ""

        def _list(name):
            return list(getattr(configuration, name) or [])

        def _dict(name):
            return dict(getattr(configuration, name) or {})

        sdk_timeout = configuration.anf_sdk_timeout
        max_cache_age = configuration.anf_max_cache_age

        return cls(
            subscription_id=_str("anf_subscription_id"),
            tenant_id=_str("anf_tenant_id"),
            client_id=_str("anf_client_id"),
            client_secret=_str("anf_client_secret"),
            credentials=_dict("anf_credentials"),
            location=_str("anf_location"),
            backend_name=_str("anf_backend_name"),
            driver_context=configuration.anf_driver_context or common.CONTEXT_CSI,
            storage_prefix=configuration.anf_storage_prefix,
            size=_str("anf_size"),
            unix_permissions=_str("anf_unix_permissions"),
            preview_unix_permissions=bool(configuration.anf_preview_unix_permissions),
            nfs_mount_options=_str("anf_nfs_mount_options"),
            snapshot_dir=_str("anf_snapshot_dir"),
            limit_volume_size=_str("anf_limit_volume_size"),
            export_rule=_str("anf_export_rule"),
            network_features=_str("anf_network_features"),
            nas_type=_str("anf_nas_type"),
            kerberos=_str("anf_kerberos"),
            service_level=_str("anf_service_level"),
            virtual_network=_str("anf_virtual_network"),
            subnet=_str("anf_subnet"),
            resource_groups=_list("anf_resource_groups"),
            netapp_accounts=_list("anf_netapp_accounts"),
            capacity_pools=_list("anf_capacity_pools"),
            labels=_dict("anf_labels"),
            region=_str("anf_region"),
            zone=_str("anf_zone"),
            supported_topologies=parse_supported_topologies(
                configuration.anf_supported_topologies
            ),
            storage=parse_virtual_pools(configuration.anf_virtual_pools),
            volume_create_timeout=configuration.anf_volume_create_timeout,
            sdk_timeout=api.DEFAULT_SDK_TIMEOUT if sdk_timeout is None else int(sdk_timeout),
            max_cache_age=api.DEFAULT_MAX_CACHE_AGE if max_cache_age is None else int(max_cache_age),
            acp_enabled=bool(configuration.anf_acp_enabled),
            acp_endpoint=_str("anf_acp_endpoint"),
            acp_timeout=configuration.anf_acp_timeout or 10,
            acp_retry_count=configuration.anf_acp_retry_count or 0,
        )

    def populate_defaults(self) -> None:
        """Fill in defaults for settings not supplied in the configuration."""
        if self.storage_prefix is None:
            prefix = common.get_default_storage_prefix(self.driver_context)
            self.storage_prefix = prefix.replace("_", "-")

        if not self.size:
            self.size = DEFAULT_VOLUME_SIZE

        if not self.unix_permissions:
            self.unix_permissions = DEFAULT_UNIX_PERMISSIONS

        if not self.nfs_mount_options:
            if self.kerberos:
                self.nfs_mount_options = DEFAULT_KERBEROS_NFS_MOUNT_OPTIONS
            else:
                self.nfs_mount_options = DEFAULT_NFS_MOUNT_OPTIONS

        if not self.snapshot_dir:
            self.snapshot_dir = DEFAULT_SNAPSHOT_DIR

        if not self.limit_volume_size:
            self.limit_volume_size = DEFAULT_LIMIT_VOLUME_SIZE

        if not self.export_rule:
            self.export_rule = DEFAULT_EXPORT_RULE

        if not self.network_features:
            self.network_features = DEFAULT_NETWORK_FEATURES

        if not self.nas_type:
            self.nas_type = sa.NFS

        LOG.debug(
            "Configuration defaults: storage_prefix=%s, size=%s, unix_permissions=%s, "
            "service_level=%s, nfs_mount_options=%s, snapshot_dir=%s, "
            "limit_volume_size=%s, export_rule=%s",
            self.storage_prefix,
            self.size,
            self.unix_permissions,
            self.service_level,
            self.nfs_mount_options,
            self.snapshot_dir,
            self.limit_volume_size,
            self.export_rule,
        )

    def sanitized_copy(self) -> "AzureNASStorageDriverConfig":
        """Return a deep copy with secrets redacted."""
        clone = copy.deepcopy(self)
        clone.client_secret = common.REDACTED
        clone.credentials = {
            common.KEY_NAME: common.REDACTED,
            common.KEY_TYPE: common.REDACTED,
        }
        return clone
