"""Unit tests for volume creation and placement in the Azure NetApp Files driver."""

import json
from unittest.mock import Mock

import pytest

from anf_storage import exceptions
from anf_storage.drivers import common
from anf_storage.drivers.azure import api
from anf_storage.drivers.azure import pools as anf_pools
from anf_storage.storage import attributes as sa
from anf_storage.storage import pool as storage_pool_module
from anf_storage.storage import volume as storage_volume


def _volume_config(**kwargs):
    values = {"name": "testvol", "internal_name": "anf-testvol"}
    values.update(kwargs)
    return storage_volume.VolumeConfig(**values)


class TestCreateVolume:
    """Test NASStorageDriver.create."""

    def test_create_nfs_volume(self, driver, mock_azure_client, storage_pool):
        """Test successful NFS volume creation with defaults."""
        volume_config = _volume_config(size="200Gi")

        driver.create(volume_config, storage_pool)

        mock_azure_client.create_volume.assert_called_once()
        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.name == "testvol"
        assert request.creation_token == "anf-testvol"
        assert request.capacity_pool == "cpool1"
        assert request.quota_in_bytes == 214748364800
        assert request.protocol_types == [api.PROTOCOL_TYPE_NFSV3]
        assert request.snapshot_directory is False
        assert request.subnet_id.endswith("/subnets/subnet1")
        assert request.kerberos_enabled is False

        rule = request.export_policy.rules[0]
        assert rule.allowed_clients == "0.0.0.0/0"
        assert rule.nfsv3 is True
        assert rule.nfsv41 is False
        assert rule.unix_read_write is True

        assert volume_config.internal_id == api.create_volume_id(
            driver.config.subscription_id, "rg1", "acct1", "cpool1", "testvol"
        )
        assert volume_config.size == "214748364800"
        assert volume_config.protocol == storage_volume.FILE
        assert volume_config.snapshot_dir == "false"

    def test_create_small_volume_raised_to_minimum(self, driver, mock_azure_client, storage_pool):
        """Test 50 GiB over NFSv4.1 is raised to 100 GiB without kerberos flags."""
        volume_config = _volume_config(size="50Gi", mount_options="nfsvers=4.1")

        driver.create(volume_config, storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.quota_in_bytes == 107374182400
        assert request.protocol_types == [api.PROTOCOL_TYPE_NFSV41]

        rule = request.export_policy.rules[0]
        assert rule.nfsv41 is True
        assert rule.nfsv3 is False
        assert rule.unix_read_write is True
        assert not any(
            [
                rule.kerberos5_read_write,
                rule.kerberos5i_read_write,
                rule.kerberos5p_read_write,
            ]
        )
        assert volume_config.size == "107374182400"

    def test_create_zero_size_uses_pool_default(self, driver, mock_azure_client, storage_pool):
        storage_pool.internal_attributes[anf_pools.SIZE] = "500Gi"

        driver.create(_volume_config(size="0"), storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.quota_in_bytes == 536870912000

    def test_create_below_absolute_minimum_rejected(self, driver, mock_azure_client, storage_pool):
        with pytest.raises(exceptions.UnsupportedCapacityRangeError):
            driver.create(_volume_config(size="1Mi"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_create_above_limit_rejected(self, driver, mock_azure_client, storage_pool):
        driver.config.limit_volume_size = "500Gi"

        with pytest.raises(exceptions.UnsupportedCapacityRangeError):
            driver.create(_volume_config(size="1Ti"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_create_volume_attributes_override_pool(self, driver, mock_azure_client, storage_pool):
        volume_config = _volume_config(
            size="100Gi",
            service_level="premium",
            snapshot_dir="true",
            unix_permissions="0700",
            export_rule="10.0.0.0/24",
        )

        driver.create(volume_config, storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.snapshot_directory is True
        assert request.unix_permissions == "0700"
        assert request.export_policy.rules[0].allowed_clients == "10.0.0.0/24"
        assert volume_config.service_level == "Premium"

        # Only Premium capacity pools are candidates
        assert mock_azure_client.create_volume.call_count == 1
        assert request.capacity_pool == "cpool1"

    def test_create_preview_unix_permissions_default(self, driver, mock_azure_client, storage_pool):
        driver.config.preview_unix_permissions = True
        mock_azure_client.has_feature.return_value = True

        volume_config = _volume_config(size="100Gi")
        driver.create(volume_config, storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.unix_permissions == "0777"
        mock_azure_client.has_feature.assert_called_once_with(api.FEATURE_UNIX_PERMISSIONS)

    def test_create_without_preview_leaves_permissions_blank(self, driver, mock_azure_client, storage_pool):
        driver.create(_volume_config(size="100Gi"), storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.unix_permissions == ""
        mock_azure_client.has_feature.assert_not_called()

    def test_create_smb_volume(self, driver, mock_azure_client, storage_pool):
        driver.config.nas_type = "smb"

        driver.create(_volume_config(size="100Gi", unix_permissions="0755"), storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.protocol_types == [api.PROTOCOL_TYPE_CIFS]
        assert request.export_policy is None
        assert request.unix_permissions == ""

    def test_create_writes_labels(self, driver, mock_azure_client, storage_pool):
        storage_pool.attributes[sa.LABELS] = sa.LabelOffer({"performance": "gold"})

        driver.create(_volume_config(size="100Gi"), storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        provisioning = json.loads(request.labels[storage_pool_module.PROVISIONING_LABEL_TAG])
        assert provisioning == {"provisioning": {"performance": "gold"}}

        telemetry = json.loads(request.labels[common.TELEMETRY_LABEL_TAG])
        assert telemetry[common.TELEMETRY_LABEL_TAG]["backendUUID"] == "backend-uuid-1"
        assert telemetry[common.TELEMETRY_LABEL_TAG]["plugin"] == "azure-netapp-files"


class TestCreateValidation:
    """Test that invalid requests fail before any backend call."""

    @pytest.mark.parametrize("length", [1, 64])
    def test_volume_name_length_accepted(self, driver, mock_azure_client, storage_pool, length):
        name = "v" * length

        driver.create(_volume_config(name=name, size="100Gi"), storage_pool)

        assert mock_azure_client.create_volume.call_args[0][0].name == name

    def test_volume_name_too_long(self, driver, mock_azure_client, storage_pool):
        mock_azure_client.reset_mock()

        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(name="v" * 65, size="100Gi"), storage_pool)

        mock_azure_client.refresh_azure_resources.assert_not_called()
        mock_azure_client.create_volume.assert_not_called()

    @pytest.mark.parametrize("name", ["1vol", "-vol", "vol.name", ""])
    def test_volume_name_syntax_rejected(self, driver, mock_azure_client, storage_pool, name):
        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(name=name), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_creation_token_length_boundary(self, driver, mock_azure_client, storage_pool):
        driver.create(_volume_config(internal_name="t" * 80, size="100Gi"), storage_pool)
        mock_azure_client.create_volume.assert_called_once()

        mock_azure_client.reset_mock()
        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(internal_name="t" * 81, size="100Gi"), storage_pool)

        mock_azure_client.refresh_azure_resources.assert_not_called()
        mock_azure_client.create_volume.assert_not_called()

    def test_creation_token_rejects_underscore(self, driver, mock_azure_client, storage_pool):
        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(internal_name="anf_testvol"), storage_pool)

    @pytest.mark.parametrize(
        "overrides",
        [
            {"size": "lots"},
            {"unix_permissions": "0999"},
            {"export_rule": "10.0.0.300"},
            {"snapshot_dir": "maybe"},
            {"mount_options": "nfsvers=2"},
        ],
    )
    def test_invalid_attributes_rejected_before_backend(
        self, driver, mock_azure_client, storage_pool, overrides
    ):
        mock_azure_client.reset_mock()

        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(**overrides), storage_pool)

        mock_azure_client.refresh_azure_resources.assert_not_called()
        mock_azure_client.volume_exists.assert_not_called()
        mock_azure_client.create_volume.assert_not_called()

    def test_unknown_pool_rejected(self, driver, mock_azure_client):
        pool = storage_pool_module.StoragePool(None, "no_such_pool")

        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(size="100Gi"), pool)

        mock_azure_client.create_volume.assert_not_called()


class TestCreateIdempotency:
    """Test retries of create while the backend is still working."""

    def test_create_while_creating_is_retryable(self, driver, mock_azure_client, storage_pool, make_volume):
        mock_azure_client.volume_exists.return_value = (
            True,
            make_volume(provisioning_state="Creating"),
        )

        for _ in range(2):
            with pytest.raises(exceptions.VolumeCreatingError) as exc_info:
                driver.create(_volume_config(size="100Gi"), storage_pool)
            assert isinstance(exc_info.value, exceptions.TransientError)

        mock_azure_client.create_volume.assert_not_called()

    def test_create_existing_volume_fails(self, driver, mock_azure_client, storage_pool, make_volume):
        mock_azure_client.volume_exists.return_value = (True, make_volume())

        with pytest.raises(exceptions.VolumeExistsError):
            driver.create(_volume_config(size="100Gi"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_create_times_out_while_creating(self, driver, mock_azure_client, storage_pool, make_volume):
        """Test a volume still creating at the deadline is reported as retryable."""
        mock_azure_client.volume_by_id.return_value = make_volume(provisioning_state="Creating")
        volume_config = _volume_config(size="100Gi")

        with pytest.raises(exceptions.VolumeCreatingError):
            driver.create(volume_config, storage_pool)

        # The ID is kept so the retry finds the same volume
        assert volume_config.internal_id
        mock_azure_client.delete_volume.assert_not_called()

    def test_create_error_state_deletes_volume(self, driver, mock_azure_client, storage_pool, make_volume):
        mock_azure_client.volume_by_id.return_value = make_volume(provisioning_state="Error")

        with pytest.raises(exceptions.TerminalStateError):
            driver.create(_volume_config(size="100Gi"), storage_pool)

        mock_azure_client.delete_volume.assert_called_once()


class TestPlacement:
    """Test capacity pool placement."""

    def test_placement_follows_configured_order(self, driver, mock_azure_client, storage_pool):
        storage_pool.internal_attributes[anf_pools.CAPACITY_POOLS] = ["cpool2", "rg1/acct1/cpool1"]
        mock_azure_client.create_volume.side_effect = [
            exceptions.BackendError(details="quota exceeded"),
            Mock(id="new-volume-id"),
        ]

        volume_config = _volume_config(size="100Gi")
        driver.create(volume_config, storage_pool)

        attempted = [c[0][0].capacity_pool for c in mock_azure_client.create_volume.call_args_list]
        assert attempted == ["cpool2", "cpool1"]
        assert volume_config.internal_id == "new-volume-id"

    def test_placement_stops_at_first_success(self, driver, mock_azure_client, storage_pool):
        driver.create(_volume_config(size="100Gi"), storage_pool)

        assert mock_azure_client.create_volume.call_count == 1

    def test_placement_exhausted_aggregates_failures(self, driver, mock_azure_client, storage_pool):
        mock_azure_client.create_volume.side_effect = [
            exceptions.BackendError(details="pool one full"),
            exceptions.BackendError(details="pool two full"),
        ]

        with pytest.raises(exceptions.PlacementExhaustedError) as exc_info:
            driver.create(_volume_config(size="100Gi"), storage_pool)

        failures = exc_info.value.failures
        assert [cpool for cpool, _ in failures] == ["rg1/acct1/cpool1", "rg1/acct1/cpool2"]
        assert "pool one full" in str(exc_info.value)
        assert "pool two full" in str(exc_info.value)

    def test_no_subnet_fails(self, driver, mock_azure_client, storage_pool):
        mock_azure_client.subnets.return_value = []

        with pytest.raises(exceptions.PlacementError):
            driver.create(_volume_config(size="100Gi"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_no_capacity_pool_fails(self, driver, mock_azure_client, storage_pool):
        with pytest.raises(exceptions.PlacementError):
            driver.create(_volume_config(size="100Gi", service_level="Ultra"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()


class TestCreateKerberos:
    """Test kerberos volume creation."""

    @pytest.mark.parametrize(
        "kerberos, flag",
        [
            ("sec=krb5", "kerberos5_read_write"),
            ("sec=krb5i", "kerberos5i_read_write"),
            ("sec=krb5p", "kerberos5p_read_write"),
        ],
    )
    def test_kerberos_export_rule(self, driver, mock_azure_client, mock_acp, storage_pool, kerberos, flag):
        storage_pool.internal_attributes[anf_pools.KERBEROS] = kerberos

        volume_config = _volume_config(size="100Gi", mount_options="nfsvers=3")
        driver.create(volume_config, storage_pool)

        request = mock_azure_client.create_volume.call_args[0][0]
        assert request.kerberos_enabled is True
        assert request.protocol_types == [api.PROTOCOL_TYPE_NFSV41]

        rule = request.export_policy.rules[0]
        assert rule.nfsv41 is True
        assert rule.nfsv3 is False
        assert rule.unix_read_write is False
        assert rule.unix_read_only is False
        kerberos_flags = {
            "kerberos5_read_write": rule.kerberos5_read_write,
            "kerberos5i_read_write": rule.kerberos5i_read_write,
            "kerberos5p_read_write": rule.kerberos5p_read_write,
        }
        assert [name for name, enabled in kerberos_flags.items() if enabled] == [flag]

        assert volume_config.kerberos == kerberos
        mock_acp.is_feature_enabled.assert_called()

    def test_kerberos_without_entitlement_fails(self, driver, mock_azure_client, mock_acp, storage_pool):
        storage_pool.internal_attributes[anf_pools.KERBEROS] = "sec=krb5"
        mock_acp.is_feature_enabled.side_effect = exceptions.EntitlementError(
            feature="inflightEncryption", details="denied"
        )

        with pytest.raises(exceptions.EntitlementError):
            driver.create(_volume_config(size="100Gi"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()

    def test_unknown_kerberos_mode_rejected(self, driver, mock_azure_client, storage_pool):
        storage_pool.internal_attributes[anf_pools.KERBEROS] = "sec=sys"

        with pytest.raises(exceptions.ValidationError):
            driver.create(_volume_config(size="100Gi"), storage_pool)

        mock_azure_client.create_volume.assert_not_called()
