"""Pytest configuration and fixtures for Azure NetApp Files driver unit tests."""

from unittest.mock import Mock

import pytest

from anf_storage.drivers.azure import api
from anf_storage.drivers.azure import driver as anf_driver
from anf_storage.drivers.azure import waiter

SUBSCRIPTION_ID = "9a1b2c3d-0000-4000-8000-000000000001"
SUBNET_ID = (
    "/subscriptions/9a1b2c3d-0000-4000-8000-000000000001/resourceGroups/rg1"
    "/providers/Microsoft.Network/virtualNetworks/vnet1/subnets/subnet1"
)
VOLUME_ID = api.create_volume_id(SUBSCRIPTION_ID, "rg1", "acct1", "cpool1", "testvol")


@pytest.fixture
def mock_anf_config():
    """Create a mock oslo.config-like configuration object for the driver."""
    config = Mock()

    # Azure identity
    config.anf_subscription_id = SUBSCRIPTION_ID
    config.anf_tenant_id = "tenant-0001"
    config.anf_client_id = "c1d2e3f4-client"
    config.anf_client_secret = "client-secret"
    config.anf_credentials = {}
    config.anf_location = "eastus"

    # Backend identity
    config.anf_backend_name = "anf_test_backend"
    config.anf_driver_context = "csi"
    config.anf_storage_prefix = None

    # Volume defaults
    config.anf_size = None
    config.anf_unix_permissions = None
    config.anf_preview_unix_permissions = False
    config.anf_nfs_mount_options = None
    config.anf_snapshot_dir = None
    config.anf_limit_volume_size = None
    config.anf_export_rule = None
    config.anf_network_features = None
    config.anf_nas_type = "nfs"
    config.anf_kerberos = None
    config.anf_service_level = None

    # Placement
    config.anf_virtual_network = None
    config.anf_subnet = None
    config.anf_resource_groups = []
    config.anf_netapp_accounts = []
    config.anf_capacity_pools = []

    # Pool reporting
    config.anf_labels = {}
    config.anf_region = None
    config.anf_zone = None
    config.anf_supported_topologies = []
    config.anf_virtual_pools = []

    # Timeouts
    config.anf_volume_create_timeout = None
    config.anf_sdk_timeout = 30
    config.anf_max_cache_age = 600

    # Entitlements
    config.anf_acp_enabled = True
    config.anf_acp_endpoint = "http://127.0.0.1:8100"
    config.anf_acp_timeout = 10
    config.anf_acp_retry_count = 3

    return config


@pytest.fixture
def make_volume():
    """Return a factory for backend volumes with sensible defaults."""

    def _make_volume(**kwargs):
        values = {
            "id": VOLUME_ID,
            "resource_group": "rg1",
            "netapp_account": "acct1",
            "capacity_pool": "cpool1",
            "name": "testvol",
            "location": "eastus",
            "creation_token": "anf-testvol",
            "provisioning_state": "Available",
            "protocol_types": [api.PROTOCOL_TYPE_NFSV3],
            "quota_in_bytes": 107374182400,
            "service_level": "Premium",
            "snapshot_directory": True,
            "subnet_id": SUBNET_ID,
            "unix_permissions": "0755",
            "export_policy": api.ExportPolicy(
                rules=[api.ExportRule(allowed_clients="0.0.0.0/0", nfsv3=True, unix_read_write=True)]
            ),
            "mount_targets": [
                api.MountTarget(
                    mount_target_id="mt1",
                    ip_address="10.0.0.4",
                    server_fqdn="anf-7d1f.contoso.com",
                )
            ],
            "labels": {},
        }
        values.update(kwargs)
        return api.FileSystem(**values)

    return _make_volume


@pytest.fixture
def make_snapshot():
    """Return a factory for backend snapshots."""

    def _make_snapshot(**kwargs):
        values = {
            "id": VOLUME_ID + "/snapshots/snap1",
            "resource_group": "rg1",
            "netapp_account": "acct1",
            "capacity_pool": "cpool1",
            "volume": "testvol",
            "name": "snap1",
            "location": "eastus",
            "snapshot_id": "5b7c9e2a-snapshot",
            "provisioning_state": "Available",
        }
        values.update(kwargs)
        return api.Snapshot(**values)

    return _make_snapshot


@pytest.fixture
def mock_azure_client(make_volume):
    """Create a mock Azure NetApp Files client."""
    client = Mock()

    client.capacity_pools.return_value = [
        api.CapacityPool("rg1", "acct1", "cpool1", location="eastus", service_level="Premium"),
        api.CapacityPool("rg1", "acct1", "cpool2", location="eastus", service_level="Standard"),
    ]
    client.subnets.return_value = [
        api.Subnet("rg1", "vnet1", "subnet1", location="eastus", id=SUBNET_ID),
    ]
    client.volumes.return_value = []
    client.has_feature.return_value = False

    # No volume exists until a test says otherwise
    client.volume_exists.return_value = (False, None)
    client.volume_exists_by_id.return_value = (False, None)

    def _create_volume(request):
        return make_volume(
            id=api.create_volume_id(
                SUBSCRIPTION_ID,
                request.resource_group,
                request.netapp_account,
                request.capacity_pool,
                request.name,
            ),
            resource_group=request.resource_group,
            netapp_account=request.netapp_account,
            capacity_pool=request.capacity_pool,
            name=request.name,
            creation_token=request.creation_token,
            provisioning_state="Creating",
        )

    client.create_volume.side_effect = _create_volume

    # Polling finds the volume Available
    client.volume_by_id.return_value = make_volume()

    return client


@pytest.fixture
def mock_acp():
    """Create an entitlement client that entitles every feature."""
    acp = Mock()
    acp.is_feature_enabled.return_value = None
    return acp


@pytest.fixture
def fake_clock():
    """A clock that only advances when slept on."""

    class FakeClock:
        def __init__(self):
            self.now = 0.0
            self.sleeps = []

        def __call__(self):
            return self.now

        def sleep(self, seconds):
            self.sleeps.append(seconds)
            self.now += seconds

    return FakeClock()


@pytest.fixture
def driver(mock_anf_config, mock_azure_client, mock_acp, fake_clock):
    """Create an initialized driver whose waits never really sleep."""
    drv = anf_driver.NASStorageDriver(
        configuration=mock_anf_config, client=mock_azure_client, acp=mock_acp
    )
    drv.initialize(driver_context="csi", backend_uuid="backend-uuid-1")
    drv.waiter = waiter.StateWaiter(mock_azure_client, sleep=fake_clock.sleep, clock=fake_clock)
    return drv


@pytest.fixture
def storage_pool(driver):
    """The single storage pool reported by the default configuration."""
    return driver.pools["anf_test_backend_pool"]
