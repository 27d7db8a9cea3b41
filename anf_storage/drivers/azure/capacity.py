"""Capacity pool and subnet selection for storage pools."""

import random
from typing import Dict, List, Optional

from oslo_log import log as logging

from anf_storage import exceptions
from anf_storage.drivers import common
from anf_storage.drivers.azure import api
from anf_storage.drivers.azure import pools as anf_pools

LOG = logging.getLogger(__name__)


class CapacitySelector:
    """Match storage pools to the capacity pools and subnets discovered by a client.

    A discrete ANF capacity pool is identified by resource group, NetApp
    account and pool name. Resource group names are unique within a
    subscription, account names within a resource group and pool names
    within an account, so the full name never overlaps between storage
    pools.
    """

    def __init__(self, client: api.AzureClient, storage_pools: Dict, subscription_id: str = "",
                 rng: Optional[random.Random] = None):
        self.client = client
        self.storage_pools = storage_pools
        self.subscription_id = subscription_id
        self._rng = rng or random.Random()

    def capacity_pools_for_storage_pool(self, storage_pool, service_level: str = "") -> List[api.CapacityPool]:
        """Return the capacity pools that may host a volume in ``storage_pool``.

        Pools named in the storage pool's capacity pool list keep the order of
        that list; otherwise discovery order is kept.
        """
        attrs = storage_pool.internal_attributes
        resource_groups = attrs.get(anf_pools.RESOURCE_GROUPS) or []
        netapp_accounts = attrs.get(anf_pools.NETAPP_ACCOUNTS) or []
        capacity_pools = attrs.get(anf_pools.CAPACITY_POOLS) or []

        candidates = []
        for cpool in self.client.capacity_pools():
            if resource_groups and cpool.resource_group not in resource_groups:
                continue
            if netapp_accounts and (
                cpool.netapp_account not in netapp_accounts
                and cpool.account_full_name not in netapp_accounts
            ):
                continue
            if capacity_pools and (
                cpool.name not in capacity_pools and cpool.full_name not in capacity_pools
            ):
                continue
            if service_level and cpool.service_level != service_level:
                continue
            if cpool.provisioning_state != api.ProvisioningState.AVAILABLE:
                continue
            candidates.append(cpool)

        if capacity_pools:

            def _position(cpool):
                for index, name in enumerate(capacity_pools):
                    if name in (cpool.name, cpool.full_name):
                        return index
                return len(capacity_pools)

            candidates.sort(key=_position)

        return candidates

    def capacity_pools_for_storage_pools(self) -> List[api.CapacityPool]:
        """Return the union of capacity pools over all storage pools, without duplicates."""
        seen = set()
        result = []
        for storage_pool in self.storage_pools.values():
            service_level = storage_pool.internal_attributes.get(anf_pools.SERVICE_LEVEL, "")
            for cpool in self.capacity_pools_for_storage_pool(storage_pool, service_level):
                if cpool.full_name in seen:
                    continue
                seen.add(cpool.full_name)
                result.append(cpool)
        return result

    def ensure_volume_in_valid_capacity_pool(self, volume: api.FileSystem) -> None:
        """Ensure a volume lives in a capacity pool managed by this backend.

        Raises:
            VolumeImportError: If the volume's capacity pool is not referenced
        """
        all_cpools = self.capacity_pools_for_storage_pools()

        # No capacity pools at all means no restriction
        if not all_cpools:
            return

        if volume.capacity_pool_full_name in {cpool.full_name for cpool in all_cpools}:
            return

        raise exceptions.VolumeImportError(
            name=volume.creation_token,
            details="volume is part of another capacity pool not referenced by this backend",
        )

    def subnets_for_storage_pool(self, storage_pool) -> List[api.Subnet]:
        attrs = storage_pool.internal_attributes
        resource_groups = attrs.get(anf_pools.RESOURCE_GROUPS) or []
        vnet = attrs.get(anf_pools.VIRTUAL_NETWORK) or ""
        subnet_name = attrs.get(anf_pools.SUBNET) or ""

        subnets = []
        for subnet in self.client.subnets():
            if resource_groups and subnet.resource_group not in resource_groups:
                continue
            if vnet and vnet not in (subnet.virtual_network, subnet.virtual_network_full_name):
                continue
            if subnet_name and subnet_name not in (subnet.name, subnet.full_name):
                continue
            subnets.append(subnet)
        return subnets

    def random_subnet_for_storage_pool(self, storage_pool) -> Optional[api.Subnet]:
        subnets = self.subnets_for_storage_pool(storage_pool)
        if not subnets:
            return None
        return self._rng.choice(subnets)

    def get_storage_backend_pools(self) -> List[common.AnfStorageBackendPool]:
        """List the discrete capacity pools reachable from this backend."""
        backend_pools = [
            common.AnfStorageBackendPool(
                subscription_id=self.subscription_id,
                resource_group=cpool.resource_group,
                netapp_account=cpool.netapp_account,
                location=cpool.location,
                capacity_pool=cpool.name,
            )
            for cpool in self.capacity_pools_for_storage_pools()
        ]
        LOG.debug("Found %d storage backend pools", len(backend_pools))
        return backend_pools
