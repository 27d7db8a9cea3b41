"""Unit tests for Azure NetApp Files driver configuration."""

import pytest
from oslo_config import cfg

from anf_storage import exceptions
from anf_storage.drivers import common
from anf_storage.drivers.azure import configuration as anf_config


@pytest.fixture
def conf():
    """Create a fresh ConfigOpts with the driver options registered."""
    conf = cfg.ConfigOpts()
    anf_config.register_opts(conf)
    conf(args=[], default_config_files=[], default_config_dirs=[])
    yield conf
    conf.reset()


class TestOptions:
    """Test option registration."""

    def test_list_opts(self):
        groups = anf_config.list_opts()

        assert len(groups) == 1
        group, opts = groups[0]
        assert group == anf_config.CONF_GROUP
        names = {opt.name for opt in opts}
        assert "anf_subscription_id" in names
        assert "anf_virtual_pools" in names
        assert "anf_acp_endpoint" in names

    def test_client_secret_is_secret(self):
        opts = {opt.name: opt for opt in anf_config.get_anf_opts()}

        assert opts["anf_client_secret"].secret is True
        assert opts["anf_credentials"].secret is True

    def test_defaults(self, conf):
        group = getattr(conf, anf_config.CONF_GROUP)

        assert group.anf_driver_context == common.CONTEXT_CSI
        assert group.anf_nas_type == "nfs"
        assert group.anf_sdk_timeout == 30
        assert group.anf_max_cache_age == 600
        assert group.anf_capacity_pools == []
        assert group.anf_storage_prefix is None

    def test_invalid_choice_rejected(self, conf):
        with pytest.raises(ValueError):
            conf.set_override("anf_kerberos", "sec=sys", group=anf_config.CONF_GROUP)


class TestConfiguration:
    """Test the group-scoped configuration wrapper."""

    def test_attribute_access(self, conf):
        conf.set_override("anf_location", "westeurope", group=anf_config.CONF_GROUP)
        configuration = anf_config.Configuration(conf=conf)

        assert configuration.anf_location == "westeurope"

    def test_unknown_option(self, conf):
        configuration = anf_config.Configuration(conf=conf)

        with pytest.raises(cfg.NoSuchOptError):
            configuration.anf_no_such_option

    def test_append_config_values_is_repeatable(self, conf):
        configuration = anf_config.Configuration(conf=conf)

        configuration.append_config_values(anf_config.get_anf_opts())

        assert configuration.anf_nas_type == "nfs"


class TestDriverConfig:
    """Test AzureNASStorageDriverConfig."""

    def _driver_config(self, conf, **overrides):
        for name, value in overrides.items():
            conf.set_override(name, value, group=anf_config.CONF_GROUP)
        return anf_config.AzureNASStorageDriverConfig.from_configuration(
            anf_config.Configuration(conf=conf)
        )

    def test_from_configuration(self, conf):
        config = self._driver_config(
            conf,
            anf_subscription_id="sub-1",
            anf_client_secret="s3cret",
            anf_capacity_pools=["rg1/acct1/pool1", "pool2"],
            anf_labels={"cloud": "azure"},
            anf_volume_create_timeout=300,
        )

        assert config.subscription_id == "sub-1"
        assert config.client_secret == "s3cret"
        assert config.capacity_pools == ["rg1/acct1/pool1", "pool2"]
        assert config.labels == {"cloud": "azure"}
        assert config.volume_create_timeout == 300
        assert config.storage == []

    def test_populate_defaults(self, conf):
        config = self._driver_config(conf)

        config.populate_defaults()

        assert config.storage_prefix == "anf-"
        assert config.size == anf_config.DEFAULT_VOLUME_SIZE
        assert config.nfs_mount_options == "nfsvers=3"
        assert config.snapshot_dir == "false"
        assert config.export_rule == "0.0.0.0/0"
        assert config.unix_permissions == ""
        assert config.nas_type == "nfs"

    def test_populate_defaults_kerberos(self, conf):
        config = self._driver_config(conf, anf_kerberos="sec=krb5p")

        config.populate_defaults()

        assert config.nfs_mount_options == "nfsvers=4.1"

    def test_populate_defaults_keeps_empty_prefix(self, conf):
        config = self._driver_config(conf, anf_storage_prefix="")

        config.populate_defaults()

        assert config.storage_prefix == ""

    def test_docker_prefix(self, conf):
        config = self._driver_config(conf, anf_driver_context="docker")

        config.populate_defaults()

        assert config.storage_prefix == "anfdvp-"

    def test_virtual_pools(self, conf):
        config = self._driver_config(
            conf,
            anf_virtual_pools=[
                '{"serviceLevel": "Premium", "capacityPools": ["pool1"], "labels": {"tier": "gold"}}',
                '{"snapshotDir": "true", "unixPermissions": "0700"}',
            ],
        )

        assert len(config.storage) == 2
        assert config.storage[0].service_level == "Premium"
        assert config.storage[0].capacity_pools == ["pool1"]
        assert config.storage[0].labels == {"tier": "gold"}
        assert config.storage[1].snapshot_dir == "true"
        assert config.storage[1].unix_permissions == "0700"
        assert config.storage[1].capacity_pools is None

    def test_sanitized_copy(self, conf):
        config = self._driver_config(
            conf,
            anf_client_secret="s3cret",
            anf_credentials={"name": "anf-secret", "type": "k8s"},
        )

        sanitized = config.sanitized_copy()

        assert sanitized.client_secret == common.REDACTED
        assert sanitized.credentials == {"name": common.REDACTED, "type": common.REDACTED}
        assert config.client_secret == "s3cret"
        assert config.credentials["name"] == "anf-secret"


class TestSupportedTopologies:
    """Test topology segment parsing."""

    def test_from_configuration(self, conf):
        conf.set_override(
            "anf_supported_topologies",
            ['{"topology.kubernetes.io/region": "eastus"}'],
            group=anf_config.CONF_GROUP,
        )

        config = anf_config.AzureNASStorageDriverConfig.from_configuration(
            anf_config.Configuration(conf=conf)
        )

        assert config.supported_topologies == [{"topology.kubernetes.io/region": "eastus"}]

    def test_virtual_pool_topologies(self):
        pools = anf_config.parse_virtual_pools(
            ['{"supportedTopologies": [{"topology.kubernetes.io/zone": "eastus-2"}]}']
        )

        assert pools[0].supported_topologies == [{"topology.kubernetes.io/zone": "eastus-2"}]

    @pytest.mark.parametrize(
        "topology", ["{not json", "[\"eastus\"]", '{"topology.kubernetes.io/zone": 1}']
    )
    def test_invalid_topology(self, topology):
        with pytest.raises(exceptions.ConfigurationError):
            anf_config.parse_supported_topologies([topology])


class TestVirtualPoolParsing:
    """Test virtual pool definition parsing."""

    def test_dict_definitions(self):
        pools = anf_config.parse_virtual_pools([{"networkFeatures": "Standard"}])

        assert pools[0].network_features == "Standard"

    def test_unknown_attribute(self):
        with pytest.raises(exceptions.ConfigurationError):
            anf_config.parse_virtual_pools(['{"throughput": 64}'])

    def test_invalid_json(self):
        with pytest.raises(exceptions.ConfigurationError):
            anf_config.parse_virtual_pools(["{not json"])

    def test_non_object(self):
        with pytest.raises(exceptions.ConfigurationError):
            anf_config.parse_virtual_pools(["[1, 2]"])
