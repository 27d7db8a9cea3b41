"""Storage pools built from the driver configuration.

Each pool carries the capability offers advertised to the orchestrator
and the internal defaults used when provisioning into it. Pools are
built once at initialization and are read-only afterwards.
"""

from typing import Dict

from oslo_log import log as logging

from anf_storage.drivers.azure import utils
from anf_storage.storage import attributes as sa
from anf_storage.storage.pool import StoragePool

LOG = logging.getLogger(__name__)

# Internal pool attribute names
SIZE = "size"
UNIX_PERMISSIONS = "unixPermissions"
SERVICE_LEVEL = "serviceLevel"
SNAPSHOT_DIR = "snapshotDir"
EXPORT_RULE = "exportRule"
VIRTUAL_NETWORK = "virtualNetwork"
NETWORK_FEATURES = "networkFeatures"
SUBNET = "subnet"
RESOURCE_GROUPS = "resourceGroups"
NETAPP_ACCOUNTS = "netappAccounts"
CAPACITY_POOLS = "capacityPools"
KERBEROS = "kerberos"


def pool_name(backend_name: str, name: str) -> str:
    return "{}_{}".format(backend_name, name.replace("-", ""))


def _new_pool(driver_name, name, labels, nas_type, region, zone):
    pool = StoragePool(None, name)
    pool.attributes[sa.BACKEND_TYPE] = sa.StringOffer(driver_name)
    pool.attributes[sa.SNAPSHOTS] = sa.BoolOffer(True)
    pool.attributes[sa.CLONES] = sa.BoolOffer(True)
    pool.attributes[sa.ENCRYPTION] = sa.BoolOffer(False)
    pool.attributes[sa.REPLICATION] = sa.BoolOffer(False)
    pool.attributes[sa.LABELS] = sa.LabelOffer(*labels)
    pool.attributes[sa.NAS_TYPE] = sa.StringOffer(nas_type)
    if region:
        pool.attributes[sa.REGION] = sa.StringOffer(region)
    if zone:
        pool.attributes[sa.ZONE] = sa.StringOffer(zone)
    return pool


def _override(vpool_value, config_value):
    """Virtual pool values win unless blank (strings) or None (lists)."""
    if vpool_value is None or vpool_value == "":
        return config_value
    return vpool_value


def initialize_storage_pools(config, driver_name: str, backend_name: str) -> Dict[str, StoragePool]:
    """Build the storage pools reported by one backend.

    Without virtual pools a single pool named ``<backend>_pool`` is
    reported; otherwise one ``<backend>_pool_<index>`` per virtual pool.

    Args:
        config: Populated AzureNASStorageDriverConfig
        driver_name: Driver name advertised as the backend type
        backend_name: Backend name used to derive pool names

    Returns:
        Dict of pool name to StoragePool
    """
    pools = {}

    if not config.storage:
        LOG.debug("No virtual pools defined, reporting single pool.")

        pool = _new_pool(
            driver_name,
            pool_name(backend_name, "pool"),
            [config.labels],
            config.nas_type,
            config.region,
            config.zone,
        )
        pool.internal_attributes.update(
            {
                SIZE: config.size,
                UNIX_PERMISSIONS: config.unix_permissions,
                SERVICE_LEVEL: utils.title(config.service_level),
                SNAPSHOT_DIR: config.snapshot_dir,
                EXPORT_RULE: config.export_rule,
                VIRTUAL_NETWORK: config.virtual_network,
                NETWORK_FEATURES: config.network_features,
                SUBNET: config.subnet,
                RESOURCE_GROUPS: list(config.resource_groups),
                NETAPP_ACCOUNTS: list(config.netapp_accounts),
                CAPACITY_POOLS: list(config.capacity_pools),
                KERBEROS: config.kerberos,
            }
        )
        pool.supported_topologies = list(config.supported_topologies)
        pools[pool.name] = pool
        return pools

    LOG.debug("%d virtual pools defined.", len(config.storage))

    for index, vpool in enumerate(config.storage):
        pool = _new_pool(
            driver_name,
            pool_name(backend_name, "pool_%d" % index),
            [config.labels, vpool.labels],
            _override(vpool.nas_type, config.nas_type),
            _override(vpool.region, config.region),
            _override(vpool.zone, config.zone),
        )
        pool.internal_attributes.update(
            {
                SIZE: _override(vpool.size, config.size),
                UNIX_PERMISSIONS: _override(vpool.unix_permissions, config.unix_permissions),
                SERVICE_LEVEL: utils.title(_override(vpool.service_level, config.service_level)),
                SNAPSHOT_DIR: _override(vpool.snapshot_dir, config.snapshot_dir),
                EXPORT_RULE: _override(vpool.export_rule, config.export_rule),
                VIRTUAL_NETWORK: _override(vpool.virtual_network, config.virtual_network),
                NETWORK_FEATURES: _override(vpool.network_features, config.network_features),
                SUBNET: _override(vpool.subnet, config.subnet),
                RESOURCE_GROUPS: list(_override(vpool.resource_groups, config.resource_groups)),
                NETAPP_ACCOUNTS: list(_override(vpool.netapp_accounts, config.netapp_accounts)),
                CAPACITY_POOLS: list(_override(vpool.capacity_pools, config.capacity_pools)),
                KERBEROS: _override(vpool.kerberos, config.kerberos),
            }
        )
        pool.supported_topologies = list(
            _override(vpool.supported_topologies, config.supported_topologies)
        )
        pools[pool.name] = pool

    return pools
