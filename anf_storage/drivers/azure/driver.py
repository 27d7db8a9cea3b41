"""Azure NetApp Files NAS storage driver.

This driver provisions NFS and SMB volumes on Azure NetApp Files (ANF)
for a container orchestrator. All ANF calls go through an ``AzureClient``;
the driver adds the orchestration on top of it: idempotent create, clone,
import, resize and destroy workflows, snapshot management, and placement
of new volumes across the capacity pools matching a storage pool.
"""

import copy
import json
import random
import string
from datetime import timezone

from oslo_log import log as logging
from oslo_utils import strutils
from oslo_utils import timeutils
from oslo_utils import uuidutils

from anf_storage import __version__
from anf_storage import exceptions
from anf_storage.acp import client as acp_client
from anf_storage.drivers import common
from anf_storage.drivers.azure import api
from anf_storage.drivers.azure import capacity
from anf_storage.drivers.azure import configuration as anf_config
from anf_storage.drivers.azure import pools as anf_pools
from anf_storage.drivers.azure import utils
from anf_storage.drivers.azure import waiter
from anf_storage.storage import attributes as sa
from anf_storage.storage import pool as storage_pool
from anf_storage.storage import volume as storage_volume

LOG = logging.getLogger(__name__)

MINIMUM_VOLUME_SIZE_BYTES = 1000000000  # 1 GB
MINIMUM_ANF_VOLUME_SIZE_BYTES = 107374182400  # 100 GiB

# Docker has no retry loop of its own, so it gets longer timeouts
DOCKER_CREATE_TIMEOUT = 115
DOCKER_DEFAULT_TIMEOUT = 55

State = api.ProvisioningState


class NASStorageDriver:
    """Azure NetApp Files NAS storage driver.

    Architecture:
        - Each orchestrator volume = one ANF volume, named by its creation token
        - Storage pools (virtual pools) map to sets of ANF capacity pools
        - New volumes are placed in the first capacity pool that accepts them
        - Read-only clones are paths into the source's snapshot directory

    Version history:
        1.0.0 - Initial implementation
    """

    VERSION = __version__

    def __init__(self, configuration=None, client=None, client_factory=None, acp=None):
        """Initialize the driver.

        Args:
            configuration: oslo.config-style configuration holding ``anf_*`` options
            client: AzureClient instance (takes precedence over client_factory)
            client_factory: Callable building an AzureClient from a ClientConfig
            acp: Entitlement client; built from configuration if not given
        """
        self.configuration = configuration
        if self.configuration is not None:
            self.configuration.append_config_values(anf_config.get_anf_opts())

        self.client = client
        self._client_factory = client_factory
        self.acp = acp

        self.config = None
        self.pools = {}
        self.selector = None
        self.waiter = None
        self.telemetry_labels = ""
        self.volume_create_timeout = api.VOLUME_CREATE_TIMEOUT
        self._initialized = False
        self._default_backend_id = None

    # Identity

    def name(self):
        return anf_config.DRIVER_NAME

    def backend_name(self):
        """Return the configured backend name, or a name derived from the client ID."""
        if self.config is not None and self.config.backend_name:
            return self.config.backend_name
        return self._default_backend_name()

    def _default_backend_name(self):
        if self._default_backend_id is None:
            client_id = self.config.client_id if self.config is not None else ""
            if len(client_id) > 5:
                self._default_backend_id = client_id[0:5]
            else:
                self._default_backend_id = "".join(
                    random.choice(string.ascii_letters) for _ in range(6)
                )
        return "{}_{}".format(self.name().replace("-", ""), self._default_backend_id)

    def get_protocol(self):
        return storage_volume.FILE

    def _default_create_timeout(self):
        if self.config.driver_context == common.CONTEXT_DOCKER:
            return DOCKER_CREATE_TIMEOUT
        return api.VOLUME_CREATE_TIMEOUT

    def _default_timeout(self):
        if self.config.driver_context == common.CONTEXT_DOCKER:
            return DOCKER_DEFAULT_TIMEOUT
        return api.DEFAULT_TIMEOUT

    # Lifecycle

    def initialize(self, driver_context=None, backend_uuid=""):
        """Set up the driver from its configuration.

        Builds the effective config and storage pools, connects the ANF
        client, validates everything and records the discrete backend pools.

        Args:
            driver_context: 'csi' or 'docker'; overrides the configured context
            backend_uuid: Orchestrator's UUID for this backend, used in telemetry

        Raises:
            ConfigurationError: If the configuration is invalid
        """
        LOG.info("Initializing %s driver version %s", self.name(), self.VERSION)

        if self.configuration is None:
            raise exceptions.ConfigurationError(details="no configuration supplied")

        config = anf_config.AzureNASStorageDriverConfig.from_configuration(self.configuration)
        if driver_context:
            config.driver_context = driver_context
        config.populate_defaults()
        self.config = config

        self.pools = anf_pools.initialize_storage_pools(config, self.name(), self.backend_name())
        self.telemetry_labels = self._build_telemetry_labels(backend_uuid)

        if self.client is None:
            if self._client_factory is None:
                raise exceptions.ConfigurationError(
                    details="no Azure client or client factory supplied"
                )
            self.client = self._client_factory(
                api.ClientConfig(
                    subscription_id=config.subscription_id,
                    tenant_id=config.tenant_id,
                    client_id=config.client_id,
                    client_secret=config.client_secret,
                    location=config.location,
                    sdk_timeout=config.sdk_timeout,
                    max_cache_age=config.max_cache_age,
                )
            )

        if self.acp is None:
            self.acp = acp_client.AcpClient(
                endpoint=config.acp_endpoint,
                enabled=config.acp_enabled,
                timeout=config.acp_timeout,
                retry_count=config.acp_retry_count,
            )

        self.selector = capacity.CapacitySelector(self.client, self.pools, config.subscription_id)
        self.waiter = waiter.StateWaiter(self.client)

        self._refresh()
        self.validate()

        config.backend_pools = common.encode_storage_backend_pools(self.get_storage_backend_pools())

        if config.volume_create_timeout:
            self.volume_create_timeout = int(config.volume_create_timeout)
        else:
            self.volume_create_timeout = self._default_create_timeout()

        LOG.info(
            "Initialized %s backend %s: storage_prefix=%s, size=%s, service_level=%s, "
            "nfs_mount_options=%s, limit_volume_size=%s, export_rule=%s, "
            "volume_create_timeout=%s",
            self.name(),
            self.backend_name(),
            config.storage_prefix,
            config.size,
            config.service_level,
            config.nfs_mount_options,
            config.limit_volume_size,
            config.export_rule,
            self.volume_create_timeout,
        )

        self._initialized = True

    def initialized(self):
        return self._initialized

    def terminate(self, backend_uuid=""):
        LOG.info("Terminating %s backend %s", self.name(), self.backend_name())
        self._initialized = False

    def validate(self):
        """Validate the storage prefix and every storage pool's attributes.

        A kerberos pool without the required entitlement only logs a
        warning, so the backend does not fail; creates on it will.

        Raises:
            ConfigurationError: If any value is invalid
        """
        try:
            utils.validate_storage_prefix(self.config.storage_prefix)
        except exceptions.ValidationError as e:
            raise exceptions.ConfigurationError(details=str(e))

        for pool_name, pool in self.pools.items():
            attrs = pool.internal_attributes

            service_level = attrs.get(anf_pools.SERVICE_LEVEL, "")
            if service_level not in (
                api.SERVICE_LEVEL_STANDARD,
                api.SERVICE_LEVEL_PREMIUM,
                api.SERVICE_LEVEL_ULTRA,
                "",
            ):
                raise exceptions.ConfigurationError(
                    details=f"invalid service level in pool {pool_name}: {service_level}"
                )

            try:
                utils.validate_export_rule(attrs.get(anf_pools.EXPORT_RULE, ""))
            except exceptions.ValidationError as e:
                raise exceptions.ConfigurationError(details=f"pool {pool_name}: {e}")

            if attrs.get(anf_pools.SNAPSHOT_DIR):
                try:
                    strutils.bool_from_string(attrs[anf_pools.SNAPSHOT_DIR], strict=True)
                except ValueError as e:
                    raise exceptions.ConfigurationError(
                        details=f"invalid value for snapshotDir in pool {pool_name}; {e}"
                    )

            if attrs.get(anf_pools.UNIX_PERMISSIONS):
                try:
                    utils.validate_octal_unix_permissions(attrs[anf_pools.UNIX_PERMISSIONS])
                except exceptions.ValidationError as e:
                    raise exceptions.ConfigurationError(
                        details=f"invalid value for unixPermissions in pool {pool_name}; {e}"
                    )

            try:
                common.convert_size_to_bytes(attrs.get(anf_pools.SIZE, ""))
            except ValueError as e:
                raise exceptions.ConfigurationError(
                    details=f"invalid value for default volume size in pool {pool_name}; {e}"
                )

            try:
                pool.get_labels_json(storage_pool.PROVISIONING_LABEL_TAG, api.MAX_LABEL_LENGTH)
            except ValueError as e:
                raise exceptions.ConfigurationError(
                    details=f"invalid value for label in pool {pool_name}; {e}"
                )

            if attrs.get(anf_pools.NETWORK_FEATURES, "") not in (
                "",
                api.NETWORK_FEATURES_BASIC,
                api.NETWORK_FEATURES_STANDARD,
            ):
                raise exceptions.ConfigurationError(
                    details=f"invalid value for networkFeatures in pool {pool_name}"
                )

            kerberos = attrs.get(anf_pools.KERBEROS, "")
            if kerberos:
                if kerberos not in api.KERBEROS_MODES:
                    raise exceptions.ConfigurationError(
                        details=f"unsupported kerberos type in pool {pool_name}: {kerberos}"
                    )
                try:
                    self.acp.is_feature_enabled(acp_client.FEATURE_INFLIGHT_ENCRYPTION)
                except exceptions.EntitlementError as e:
                    LOG.warning(
                        "Pool %s attribute %s=%s requires an entitlement; workflows "
                        "using this option may fail: %s",
                        pool_name, anf_pools.KERBEROS, kerberos, e,
                    )

    # Helpers

    def _refresh(self):
        """Refresh the client's resource cache."""
        try:
            self.client.refresh_azure_resources()
        except exceptions.AnfStorageException as e:
            raise exceptions.BackendError(
                details=f"could not update ANF resource cache; {e}"
            ) from e

    def _require_entitlement(self, feature, action):
        try:
            self.acp.is_feature_enabled(feature)
        except exceptions.EntitlementError as e:
            LOG.error("Failed to %s; feature %s is not entitled: %s", action, feature, e)
            raise

    def _build_telemetry_labels(self, backend_uuid):
        telemetry = {
            common.TELEMETRY_LABEL_TAG: {
                "version": self.VERSION,
                "plugin": self.name(),
                "backendUUID": backend_uuid or "",
            }
        }
        return json.dumps(telemetry, separators=(",", ":"), sort_keys=True).replace(" ", "")

    def _labels_with_telemetry(self, volume):
        labels = dict(volume.labels or {})
        labels[common.TELEMETRY_LABEL_TAG] = self.telemetry_labels
        return labels

    def _base_pool_labels(self):
        """Labels JSON for volumes created without a storage pool."""
        base_pool = storage_pool.StoragePool(None, "")
        base_pool.attributes[sa.LABELS] = sa.LabelOffer(self.config.labels)
        try:
            return base_pool.get_labels_json(storage_pool.PROVISIONING_LABEL_TAG, api.MAX_LABEL_LENGTH)
        except ValueError as e:
            raise exceptions.ValidationError(details=str(e))

    def _resolve_size(self, volume_config, pool):
        """Return the size in bytes for a new volume.

        Zero means the pool default. Sizes below the ANF floor are raised
        to it instead of being rejected.
        """
        try:
            size_bytes = int(common.convert_size_to_bytes(volume_config.size or "0"))
        except ValueError as e:
            raise exceptions.ValidationError(
                details=f"could not convert volume size {volume_config.size}; {e}"
            )

        if size_bytes == 0:
            default_size = utils.resolve_attribute(
                "", pool, anf_pools.SIZE, self.config.size, anf_config.DEFAULT_VOLUME_SIZE
            )
            try:
                size_bytes = int(common.convert_size_to_bytes(default_size))
            except ValueError as e:
                raise exceptions.ValidationError(
                    details=f"invalid default volume size {default_size}; {e}"
                )

        common.check_min_volume_size(size_bytes, MINIMUM_VOLUME_SIZE_BYTES)

        if size_bytes < MINIMUM_ANF_VOLUME_SIZE_BYTES:
            LOG.warning(
                "Requested size %s for volume %s is too small; setting volume size "
                "to the minimum allowable (100 GiB).",
                size_bytes, volume_config.internal_name,
            )
            size_bytes = MINIMUM_ANF_VOLUME_SIZE_BYTES

        common.check_volume_size_limits(size_bytes, self.config.limit_volume_size)
        return size_bytes

    @staticmethod
    def _format_timestamp(created):
        if created is None:
            return ""
        if created.tzinfo is not None:
            created = created.astimezone(timezone.utc)
        return created.strftime(storage_volume.TIMESTAMP_FORMAT)

    # Volume operations

    def create(self, volume_config, pool, volume_attributes=None):
        """Create a new volume.

        Args:
            volume_config: VolumeConfig of the new volume; updated in place
                with the backend ID and the values used to create it
            pool: StoragePool chosen by the orchestrator
            volume_attributes: Storage class attribute requests (unused)

        Raises:
            ValidationError: If a name or attribute is invalid (no backend call made)
            EntitlementError: If the pool uses kerberos without an entitlement
            VolumeCreatingError: If the volume already exists and is still creating
            VolumeExistsError: If the volume already exists
            PlacementError: If no subnet or capacity pool matches the storage pool
            PlacementExhaustedError: If every capacity pool rejected the request
        """
        name = volume_config.internal_name

        with waiter.Workflow("create", name) as workflow:
            utils.validate_volume_name(volume_config.name)
            utils.validate_creation_token(name)

            if storage_pool.is_storage_pool_unset(pool):
                raise exceptions.ValidationError(details="pool not specified")
            sp = self.pools.get(pool.name)
            if sp is None:
                raise exceptions.ValidationError(details=f"pool {pool.name} does not exist")
            attrs = sp.internal_attributes

            kerberos = attrs.get(anf_pools.KERBEROS, "")
            if kerberos and kerberos not in api.KERBEROS_MODES:
                raise exceptions.ValidationError(details=f"unsupported kerberos type: {kerberos}")

            size_bytes = self._resolve_size(volume_config, sp)

            service_level = utils.resolve_attribute(
                utils.title(volume_config.service_level),
                sp,
                anf_pools.SERVICE_LEVEL,
                utils.title(self.config.service_level),
            )

            snapshot_dir = utils.resolve_attribute(
                volume_config.snapshot_dir,
                sp,
                anf_pools.SNAPSHOT_DIR,
                self.config.snapshot_dir,
                anf_config.DEFAULT_SNAPSHOT_DIR,
            )
            try:
                snapshot_dir_enabled = strutils.bool_from_string(snapshot_dir, strict=True)
            except ValueError as e:
                raise exceptions.ValidationError(details=f"invalid value for snapshotDir; {e}")

            unix_permissions = utils.resolve_attribute(
                volume_config.unix_permissions,
                sp,
                anf_pools.UNIX_PERMISSIONS,
                self.config.unix_permissions,
            )
            if unix_permissions:
                utils.validate_octal_unix_permissions(unix_permissions)

            mount_options = volume_config.mount_options or self.config.nfs_mount_options

            export_rule = ""
            export_policy = None
            if self.config.nas_type == sa.SMB:
                protocol_types = [api.PROTOCOL_TYPE_CIFS]
            else:
                nfs_version = utils.get_nfs_version_from_mount_options(mount_options)
                if nfs_version == utils.NFS_VERSION_3 and not kerberos:
                    protocol_type = api.PROTOCOL_TYPE_NFSV3
                else:
                    protocol_type = api.PROTOCOL_TYPE_NFSV41
                protocol_types = [protocol_type]

                export_rule = utils.resolve_attribute(
                    volume_config.export_rule,
                    sp,
                    anf_pools.EXPORT_RULE,
                    self.config.export_rule,
                    anf_config.DEFAULT_EXPORT_RULE,
                )
                utils.validate_export_rule(export_rule)
                export_policy = api.ExportPolicy(
                    rules=[utils.build_export_rule(export_rule, protocol_type, kerberos)]
                )

            labels = {common.TELEMETRY_LABEL_TAG: self.telemetry_labels}
            try:
                labels[storage_pool.PROVISIONING_LABEL_TAG] = sp.get_labels_json(
                    storage_pool.PROVISIONING_LABEL_TAG, api.MAX_LABEL_LENGTH
                )
            except ValueError as e:
                raise exceptions.ValidationError(details=str(e))

            network_features = attrs.get(anf_pools.NETWORK_FEATURES, "")

            if kerberos:
                self._require_entitlement(acp_client.FEATURE_INFLIGHT_ENCRYPTION, "create volume")

            self._refresh()

            exists, extant_volume = self.client.volume_exists(volume_config)
            if exists:
                if extant_volume.provisioning_state in (State.ACCEPTED, State.CREATING):
                    # A retry while the first request is still in flight
                    raise exceptions.VolumeCreatingError(
                        name=name,
                        details=(
                            f"volume state is still {extant_volume.provisioning_state}, "
                            f"not {State.AVAILABLE}"
                        ),
                    )
                LOG.warning(
                    "Volume %s already exists in state %s.", name, extant_volume.provisioning_state
                )
                raise exceptions.VolumeExistsError(name=name)

            if not unix_permissions and self.config.preview_unix_permissions:
                if self.client.has_feature(api.FEATURE_UNIX_PERMISSIONS):
                    unix_permissions = anf_config.PREVIEW_UNIX_PERMISSIONS

            volume_config.size = str(size_bytes)
            volume_config.service_level = service_level
            volume_config.snapshot_dir = snapshot_dir
            volume_config.unix_permissions = unix_permissions
            volume_config.export_rule = export_rule
            volume_config.kerberos = kerberos
            volume_config.protocol = storage_volume.FILE

            workflow.advance(waiter.Phase.PLACING)

            subnet = self.selector.random_subnet_for_storage_pool(sp)
            if subnet is None:
                raise exceptions.PlacementError(
                    name=name, details=f"no subnets found for storage pool {sp.name}"
                )

            cpools = self.selector.capacity_pools_for_storage_pool(sp, service_level)
            if not cpools:
                raise exceptions.PlacementError(
                    name=name, details=f"no capacity pools found for storage pool {sp.name}"
                )

            failures = []
            for cpool in cpools:
                LOG.debug(
                    "Creating volume %s in capacity pool %s: size=%s, service_level=%s, "
                    "snapshot_dir=%s, protocol_types=%s, unix_permissions=%s, "
                    "export_policy=%s, network_features=%s",
                    name, cpool.full_name, size_bytes, service_level, snapshot_dir_enabled,
                    protocol_types, unix_permissions, export_policy, network_features,
                )

                request = api.FilesystemCreateRequest(
                    resource_group=cpool.resource_group,
                    netapp_account=cpool.netapp_account,
                    capacity_pool=cpool.name,
                    name=volume_config.name,
                    subnet_id=subnet.id,
                    creation_token=name,
                    labels=dict(labels),
                    protocol_types=list(protocol_types),
                    quota_in_bytes=size_bytes,
                    snapshot_directory=snapshot_dir_enabled,
                    network_features=network_features,
                    kerberos_enabled=bool(kerberos),
                )
                # Unix permissions and export policies only apply to NFS volumes
                if self.config.nas_type == sa.NFS:
                    request.unix_permissions = unix_permissions
                    request.export_policy = copy.deepcopy(export_policy)

                try:
                    volume = self.client.create_volume(request)
                except exceptions.AnfStorageException as e:
                    LOG.error(
                        "ANF pool %s; error creating volume %s: %s", cpool.full_name, name, e
                    )
                    failures.append((cpool.full_name, e))
                    continue

                # Always save the ID so the volume can be found efficiently later
                volume_config.internal_id = volume.id
                workflow.advance(waiter.Phase.SUBMITTED)

                LOG.info("Volume %s submitted in capacity pool %s.", name, cpool.full_name)

                self.waiter.wait_for_volume_create(
                    volume, self.volume_create_timeout, self._default_timeout(), workflow
                )
                return

            raise exceptions.PlacementExhaustedError(name, failures)

    def create_clone(self, source_config, clone_config, pool=None):
        """Clone an existing volume.

        The clone lands in the source's capacity pool and inherits the
        source's protocol, quota, permissions, export policy and network
        features. Without a source snapshot one is created and named after
        the current UTC time.

        Raises:
            ValidationError: If a name is invalid, or a read-only clone cannot
                be served from the source
            VolumeCreatingError: If the clone exists and is still creating
            VolumeExistsError: If the clone already exists
            StateError: If the source snapshot is not Available
        """
        name = clone_config.internal_name
        source_snapshot_name = clone_config.clone_source_snapshot_internal

        with waiter.Workflow("clone", name) as workflow:
            utils.validate_volume_name(clone_config.name)
            utils.validate_creation_token(name)

            self._refresh()

            source_volume = self.client.volume(source_config)

            if source_volume.kerberos_enabled:
                self._require_entitlement(acp_client.FEATURE_INFLIGHT_ENCRYPTION, "clone volume")

            if clone_config.read_only_clone:
                self._validate_read_only_clone(source_volume, clone_config)
                return

            # Clones always land in the source's capacity pool, so the clone's ID is known upfront
            clone_id = api.create_volume_id(
                self.config.subscription_id,
                source_volume.resource_group,
                source_volume.netapp_account,
                source_volume.capacity_pool,
                clone_config.name,
            )
            exists, extant_volume = self.client.volume_exists_by_id(clone_id)
            if exists:
                if extant_volume.provisioning_state in (State.ACCEPTED, State.CREATING):
                    raise exceptions.VolumeCreatingError(
                        name=name,
                        details=(
                            f"volume state is still {extant_volume.provisioning_state}, "
                            f"not {State.AVAILABLE}"
                        ),
                    )
                raise exceptions.VolumeExistsError(name=name)

            if source_snapshot_name:
                source_snapshot = self.client.snapshot_for_volume(source_volume, source_snapshot_name)
                if source_snapshot.provisioning_state != State.AVAILABLE:
                    raise exceptions.StateError(
                        resource="snapshot",
                        name=source_snapshot_name,
                        state=source_snapshot.provisioning_state,
                        expected=State.AVAILABLE,
                    )
                LOG.debug(
                    "Found source snapshot %s of volume %s.", source_snapshot_name, source_volume.name
                )
            else:
                source_snapshot = self._create_clone_source_snapshot(source_volume)

            labels = self._labels_with_telemetry(source_volume)
            if storage_pool.is_storage_pool_unset(pool):
                labels[storage_pool.PROVISIONING_LABEL_TAG] = self._base_pool_labels()

            LOG.debug(
                "Cloning volume %s from %s snapshot %s: unix_permissions=%s, network_features=%s",
                name, source_volume.creation_token, source_snapshot.name,
                source_volume.unix_permissions, source_volume.network_features,
            )

            request = api.FilesystemCreateRequest(
                resource_group=source_volume.resource_group,
                netapp_account=source_volume.netapp_account,
                capacity_pool=source_volume.capacity_pool,
                name=clone_config.name,
                subnet_id=source_volume.subnet_id,
                creation_token=name,
                labels=labels,
                protocol_types=list(source_volume.protocol_types),
                quota_in_bytes=source_volume.quota_in_bytes,
                snapshot_directory=source_volume.snapshot_directory,
                snapshot_id=source_snapshot.snapshot_id,
                network_features=source_volume.network_features,
            )
            if self.config.nas_type == sa.NFS:
                request.export_policy = copy.deepcopy(source_volume.export_policy)
                request.unix_permissions = source_volume.unix_permissions
                request.kerberos_enabled = source_volume.kerberos_enabled

            clone = self.client.create_volume(request)

            clone_config.internal_id = clone.id
            workflow.advance(waiter.Phase.SUBMITTED)

            self.waiter.wait_for_volume_create(
                clone, self.volume_create_timeout, self._default_timeout(), workflow
            )

    def _validate_read_only_clone(self, source_volume, clone_config):
        """A read-only clone is a path into an existing snapshot of the source."""
        if not source_volume.snapshot_directory:
            raise exceptions.ValidationError(
                details=(
                    f"snapshot directory access is disabled on volume "
                    f"{source_volume.creation_token}; read-only clones require it"
                )
            )
        snapshot_name = clone_config.clone_source_snapshot_internal
        if not snapshot_name:
            raise exceptions.ValidationError(details="read-only clones require a source snapshot")

        snapshot = self.client.snapshot_for_volume(source_volume, snapshot_name)
        if snapshot.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="snapshot",
                name=snapshot_name,
                state=snapshot.provisioning_state,
                expected=State.AVAILABLE,
            )

    def _create_clone_source_snapshot(self, source_volume):
        snapshot_name = timeutils.utcnow().strftime(storage_volume.SNAPSHOT_NAME_FORMAT)

        LOG.debug("Creating source snapshot %s of volume %s.", snapshot_name, source_volume.name)

        snapshot = self.client.create_snapshot(source_volume, snapshot_name)
        self.waiter.wait_for_snapshot_state(
            snapshot, source_volume, State.AVAILABLE, (State.ERROR,), api.SNAPSHOT_TIMEOUT
        )

        # The create response is not final, so fetch the completed snapshot
        snapshot = self.client.snapshot_for_volume(source_volume, snapshot_name)

        LOG.debug("Created source snapshot %s of volume %s.", snapshot.name, source_volume.name)
        return snapshot

    def import_volume(self, volume_config, original_name):
        """Import an existing ANF volume.

        Unless ``import_not_managed`` is set, the volume is brought under
        management: its permissions, export rule and labels are reconciled
        with this backend's configuration.

        Args:
            volume_config: VolumeConfig of the imported volume; updated in place
            original_name: Creation token of the existing volume

        Raises:
            VolumeNotFound: If no volume has that creation token
            VolumeImportError: If the volume cannot be imported by this backend
        """
        with waiter.Workflow("import", original_name) as workflow:
            self._refresh()

            volume = self.client.volume_by_creation_token(original_name)

            # Dual-protocol volumes report two protocol types (e.g. NFSv3 and CIFS)
            if len(volume.protocol_types) > 1:
                raise exceptions.VolumeImportError(
                    name=original_name, details="importing a dual-protocol volume is not supported"
                )

            self.selector.ensure_volume_in_valid_capacity_pool(volume)

            volume_config.size = str(volume.quota_in_bytes)

            LOG.debug(
                "Found volume %s to import: managed=%s, state=%s, capacity_pool=%s, size=%s",
                volume.creation_token, not volume_config.import_not_managed,
                volume.provisioning_state, volume.capacity_pool, volume.quota_in_bytes,
            )

            protocol_type = volume.protocol_types[0] if volume.protocol_types else ""
            is_smb = self.config.nas_type == sa.SMB and protocol_type == api.PROTOCOL_TYPE_CIFS
            is_nfs = self.config.nas_type == sa.NFS and protocol_type in (
                api.PROTOCOL_TYPE_NFSV3,
                api.PROTOCOL_TYPE_NFSV41,
            )
            if not (is_smb or is_nfs):
                raise exceptions.VolumeImportError(
                    name=original_name, details="backend and volume protocol mismatch"
                )

            kerberos = self.config.kerberos
            if kerberos and not volume.kerberos_enabled:
                raise exceptions.VolumeImportError(
                    name=original_name,
                    details="cannot import a non-kerberos volume on a kerberos enabled backend",
                )
            if not kerberos and volume.kerberos_enabled:
                raise exceptions.VolumeImportError(
                    name=original_name,
                    details="cannot import a kerberos volume on a non-kerberos enabled backend",
                )

            if not volume_config.import_not_managed:
                self._manage_imported_volume(volume, volume_config, original_name, is_nfs, workflow)

            # The creation token cannot be changed, so it becomes the internal name
            volume_config.internal_name = original_name
            volume_config.internal_id = volume.id

    def _manage_imported_volume(self, volume, volume_config, original_name, is_nfs, workflow):
        snapshot_dir = None
        if volume_config.snapshot_dir:
            try:
                snapshot_dir = strutils.bool_from_string(volume_config.snapshot_dir, strict=True)
            except ValueError:
                raise exceptions.VolumeImportError(
                    name=original_name,
                    details=f"invalid snapshot directory access value {volume_config.snapshot_dir}",
                )

        kerberos = self.config.kerberos
        if kerberos:
            self._require_entitlement(acp_client.FEATURE_INFLIGHT_ENCRYPTION, "import volume")

        labels = self._labels_with_telemetry(volume)
        if storage_pool.allow_pool_label_overwrite(
            storage_pool.PROVISIONING_LABEL_TAG, labels.get(storage_pool.PROVISIONING_LABEL_TAG)
        ):
            labels[storage_pool.PROVISIONING_LABEL_TAG] = ""

        unix_permissions = None
        export_rule = None
        if is_nfs:
            # Permissions from the volume request win over the backend's
            unix_permissions = (
                volume_config.unix_permissions
                or self.config.unix_permissions
                or volume.unix_permissions
            )
            if unix_permissions:
                try:
                    utils.validate_octal_unix_permissions(unix_permissions)
                except exceptions.ValidationError as e:
                    raise exceptions.VolumeImportError(name=original_name, details=str(e))
            else:
                unix_permissions = None

            protocol_type = api.PROTOCOL_TYPE_NFSV41 if kerberos else volume.protocol_types[0]
            export_rule = utils.build_export_rule(self.config.export_rule, protocol_type, kerberos)

        try:
            self.client.modify_volume(
                volume,
                labels,
                unix_permissions=unix_permissions,
                snapshot_dir=snapshot_dir,
                export_rule=export_rule,
            )
        except exceptions.AnfStorageException as e:
            LOG.error("Could not import volume %s, volume modify failed: %s", original_name, e)
            raise exceptions.VolumeImportError(
                name=original_name, details=f"volume modify failed; {e}"
            ) from e

        LOG.info(
            "Volume %s modified for import: labels=%s, unix_permissions=%s",
            volume.creation_token, labels, unix_permissions,
        )

        workflow.advance(waiter.Phase.POLLING)
        try:
            self.waiter.wait_for_volume_state(
                volume, State.AVAILABLE, (State.ERROR,), self._default_timeout()
            )
        except exceptions.StateWaitError as e:
            raise exceptions.VolumeImportError(name=original_name, details=str(e)) from e

    def rename(self, name, new_name):
        """Rename a volume. Not supported; always succeeds without changes.

        Rename is only used by the import workflow, and imported ANF volumes
        keep their names, so renaming here could mislabel a volume during an
        import failure cleanup.
        """
        LOG.debug("Rename of volume %s to %s ignored.", name, new_name)

    def destroy(self, volume_config):
        """Delete a volume. Deleting a missing volume succeeds."""
        name = volume_config.internal_name

        self._refresh()

        exists, extant_volume = self.client.volume_exists(volume_config)
        if not exists:
            LOG.warning("Volume %s already deleted.", name)
            return

        if extant_volume.provisioning_state == State.DELETING:
            # A retry, so give the deletion more time before giving up again
            self.waiter.wait_for_volume_state(
                extant_volume, State.DELETED, (State.ERROR,), self.volume_create_timeout
            )
            return

        self.client.delete_volume(extant_volume)

        LOG.info("Volume %s deleted.", extant_volume.name)

        self.waiter.wait_for_volume_state(
            extant_volume, State.DELETED, (State.ERROR,), self._default_timeout()
        )

    def resize(self, volume_config, size_bytes):
        """Grow a volume's quota to ``size_bytes``.

        Raises:
            UnsupportedCapacityRangeError: If shrinking or above the size limit
            StateError: If the volume is not Available
        """
        name = volume_config.internal_name

        self._refresh()

        volume = self.client.volume(volume_config)

        # Heal the ID on legacy volumes
        if not volume_config.internal_id:
            volume_config.internal_id = volume.id

        volume_config.size = str(volume.quota_in_bytes)

        if size_bytes == volume.quota_in_bytes:
            return

        if size_bytes < volume.quota_in_bytes:
            raise exceptions.UnsupportedCapacityRangeError(
                details=(
                    f"requested size {size_bytes} is less than existing volume size "
                    f"{volume.quota_in_bytes}"
                )
            )

        if volume.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="volume",
                name=name,
                state=volume.provisioning_state,
                expected=State.AVAILABLE,
            )

        common.check_volume_size_limits(size_bytes, self.config.limit_volume_size)

        self.client.resize_volume(volume, size_bytes)

        volume_config.size = str(size_bytes)
        LOG.info("Volume %s resized to %s bytes.", name, size_bytes)

    def get(self, name):
        """Check that a volume exists.

        Raises:
            VolumeNotFound: If no volume has the creation token ``name``
        """
        self._refresh()
        self.client.volume_by_creation_token(name)

    def list(self):
        """Return the names of this backend's volumes, without the storage prefix."""
        self._refresh()

        prefix = self.config.storage_prefix or ""
        names = []
        for volume in self.client.volumes():
            if volume.provisioning_state in (State.DELETING, State.DELETED, State.ERROR):
                continue
            if not volume.creation_token.startswith(prefix):
                continue
            names.append(volume.creation_token[len(prefix):])
        return names

    def _volume_or_read_only_source(self, volume_config):
        if volume_config.read_only_clone:
            return self.client.volume_by_creation_token(volume_config.clone_source_volume_internal)
        return self.client.volume(volume_config)

    def publish(self, volume_config, publish_info):
        """Fill in the information a node needs to mount the volume.

        Read-only clones are published from their source volume.
        """
        name = volume_config.internal_name

        self._refresh()

        volume = self._volume_or_read_only_source(volume_config)
        if not volume_config.read_only_clone and not volume_config.internal_id:
            # Heal the ID on legacy volumes
            volume_config.internal_id = volume.id

        if volume.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="volume",
                name=name,
                state=volume.provisioning_state,
                expected=State.AVAILABLE,
            )
        if not volume.mount_targets:
            raise exceptions.BackendError(details=f"volume {name} has no mount targets")

        mount_target = volume.mount_targets[0]
        if self.config.nas_type == sa.SMB:
            publish_info.smb_path = volume_config.access_info.smb_path
            publish_info.smb_server = mount_target.server_fqdn
            publish_info.filesystem_type = sa.SMB
        else:
            publish_info.nfs_path = volume_config.access_info.nfs_path
            publish_info.nfs_server_ip = mount_target.ip_address
            publish_info.filesystem_type = sa.NFS
            publish_info.mount_options = volume_config.mount_options or self.config.nfs_mount_options

        # Kerberos clients must mount by FQDN
        if volume.kerberos_enabled:
            publish_info.nfs_server_ip = mount_target.server_fqdn

    def reconcile_node_access(self, nodes, backend_uuid="", orchestrator_uuid=""):
        """Per-node export policies are not used by this driver."""
        LOG.debug("Node access reconciliation not needed for backend %s", self.backend_name())

    # Snapshot operations

    def can_snapshot(self, snapshot_config, volume_config):
        """Every volume can be snapshotted."""
        return None

    def get_snapshot(self, snapshot_config, volume_config):
        """Return a snapshot, or None if it or its volume does not exist.

        Raises:
            StateError: If the snapshot exists but is not Available
        """
        snapshot_name = snapshot_config.internal_name

        self._refresh()

        exists, volume = self.client.volume_exists(volume_config)
        if not exists:
            # Snapshots cannot outlive their volume
            return None

        try:
            snapshot = self.client.snapshot_for_volume(volume, snapshot_name)
        except exceptions.NotFoundError:
            return None

        if snapshot.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="snapshot",
                name=snapshot_name,
                state=snapshot.provisioning_state,
                expected=State.AVAILABLE,
            )

        created = self._format_timestamp(snapshot.created)
        LOG.debug("Found snapshot %s of volume %s created %s.", snapshot_name, volume.name, created)

        return storage_volume.Snapshot(
            config=snapshot_config,
            created=created,
            size_bytes=0,
            state=storage_volume.SNAPSHOT_STATE_ONLINE,
        )

    def get_snapshots(self, volume_config):
        """Return the Available snapshots of a volume ([] if the volume is missing)."""
        self._refresh()

        exists, volume = self.client.volume_exists(volume_config)
        if not exists:
            return []

        snapshots = []
        for snapshot in self.client.snapshots_for_volume(volume):
            if snapshot.provisioning_state != State.AVAILABLE:
                continue
            snapshots.append(
                storage_volume.Snapshot(
                    config=storage_volume.SnapshotConfig(
                        name=snapshot.name,
                        internal_name=snapshot.name,
                        volume_name=volume_config.name,
                        volume_internal_name=volume_config.internal_name,
                    ),
                    created=self._format_timestamp(snapshot.created),
                    size_bytes=0,
                    state=storage_volume.SNAPSHOT_STATE_ONLINE,
                )
            )
        return snapshots

    def create_snapshot(self, snapshot_config, volume_config):
        """Create a snapshot and wait for it to become Available.

        Raises:
            VolumeNotFound: If the volume does not exist
        """
        snapshot_name = snapshot_config.internal_name
        volume_name = snapshot_config.volume_internal_name or volume_config.internal_name

        self._refresh()

        exists, volume = self.client.volume_exists(volume_config)
        if not exists:
            raise exceptions.VolumeNotFound(name=volume_name)

        snapshot = self.client.create_snapshot(volume, snapshot_name)
        self.waiter.wait_for_snapshot_state(
            snapshot, volume, State.AVAILABLE, (State.ERROR,), api.SNAPSHOT_TIMEOUT
        )

        LOG.info("Snapshot %s of volume %s created.", snapshot_name, volume_name)

        return storage_volume.Snapshot(
            config=snapshot_config,
            created=self._format_timestamp(snapshot.created),
            size_bytes=0,
            state=storage_volume.SNAPSHOT_STATE_ONLINE,
        )

    def restore_snapshot(self, snapshot_config, volume_config):
        """Revert a volume in place to a snapshot and wait until it is Available again."""
        snapshot_name = snapshot_config.internal_name

        self._refresh()

        volume = self.client.volume(volume_config)
        snapshot = self.client.snapshot_for_volume(volume, snapshot_name)
        if snapshot.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="snapshot",
                name=snapshot_name,
                state=snapshot.provisioning_state,
                expected=State.AVAILABLE,
            )

        self.client.restore_snapshot(volume, snapshot)

        self.waiter.wait_for_volume_state(
            volume,
            State.AVAILABLE,
            (State.ERROR, State.DELETING, State.DELETED),
            api.DEFAULT_SDK_TIMEOUT,
        )

    def delete_snapshot(self, snapshot_config, volume_config):
        """Delete a snapshot. A missing snapshot or volume is not an error."""
        snapshot_name = snapshot_config.internal_name

        self._refresh()

        exists, volume = self.client.volume_exists(volume_config)
        if not exists:
            return

        try:
            snapshot = self.client.snapshot_for_volume(volume, snapshot_name)
        except exceptions.NotFoundError:
            LOG.warning("Snapshot %s already deleted.", snapshot_name)
            return

        self.client.delete_snapshot(volume, snapshot)

        self.waiter.wait_for_snapshot_state(
            snapshot, volume, State.DELETED, (State.ERROR,), api.SNAPSHOT_TIMEOUT
        )

    # Backend registration

    def get_storage_backend_specs(self, backend):
        """Name the backend and register this driver's storage pools with it."""
        backend.set_name(self.backend_name())
        for pool in self.pools.values():
            pool.set_backend(backend)
            backend.add_storage_pool(pool)
            if pool.supported_topologies:
                LOG.debug(
                    "Pool %s supports topologies %s", pool.name, pool.supported_topologies
                )

    def get_storage_backend_physical_pool_names(self):
        return []

    def get_storage_backend_pools(self):
        return self.selector.get_storage_backend_pools()

    def get_internal_volume_name(self, name):
        """Return the creation token for a new volume named ``name``.

        Docker keeps volumes in a passthrough store, so the mapping must be
        reversible. CSI names already embed a UUID and are used as-is.
        Anything else gets a short UUID-based name, since ANF limits mount
        path length.
        """
        if self.config.driver_context == common.CONTEXT_DOCKER:
            return (self.config.storage_prefix or "") + name
        if utils.CSI_NAME_RE.fullmatch(name):
            LOG.debug("Using volume name %s as internal name.", name)
            return name
        return "anf-" + uuidutils.generate_uuid()

    def create_prepare(self, volume_config):
        volume_config.internal_name = self.get_internal_volume_name(volume_config.name)

    def create_followup(self, volume_config):
        """Record the access path and server of a newly created volume.

        Raises:
            StateError: If the volume is not Available
            BackendError: If the volume has no mount targets
        """
        name = volume_config.internal_name

        self._refresh()

        volume = self._volume_or_read_only_source(volume_config)

        if volume.provisioning_state != State.AVAILABLE:
            raise exceptions.StateError(
                resource="volume",
                name=name,
                state=volume.provisioning_state,
                expected=State.AVAILABLE,
            )
        if not volume.mount_targets:
            raise exceptions.BackendError(details=f"volume {name} has no mount targets")

        mount_target = volume.mount_targets[0]
        access_info = volume_config.access_info
        if self.config.nas_type == sa.SMB:
            access_info.smb_path = utils.construct_volume_access_path(volume_config, volume, sa.SMB)
            access_info.smb_server = mount_target.server_fqdn
            volume_config.file_system = sa.SMB
        else:
            access_info.nfs_path = utils.construct_volume_access_path(volume_config, volume, sa.NFS)
            access_info.nfs_server_ip = mount_target.ip_address
            volume_config.file_system = sa.NFS

        if volume.kerberos_enabled:
            access_info.nfs_server_ip = mount_target.server_fqdn

    # Configuration export

    def store_config(self, persistent_config):
        """Attach a copy of this backend's config to the orchestrator's persistent record."""
        persistent_config.azure_config = copy.deepcopy(self.config)

    def get_external_config(self):
        """Return a copy of this backend's config with secrets redacted."""
        return self.config.sanitized_copy()

    def __repr__(self):
        external = self.get_external_config() if self.config is not None else None
        return "NASStorageDriver(name={!r}, initialized={!r}, config={!r})".format(
            self.name(), self._initialized, external
        )

    def get_volume_external(self, name):
        self._refresh()
        return self._volume_external(self.client.volume_by_creation_token(name))

    def get_volume_external_wrappers(self):
        """Yield a VolumeExternalWrapper per volume managed by this backend.

        Failures to list volumes are yielded as a wrapper carrying the error.
        """
        try:
            self._refresh()
            volumes = self.client.volumes()
        except exceptions.AnfStorageException as e:
            yield storage_volume.VolumeExternalWrapper(volume=None, error=e)
            return

        prefix = self.config.storage_prefix or ""
        for volume in volumes:
            if volume.provisioning_state in (State.DELETING, State.DELETED, State.ERROR):
                continue
            if not volume.creation_token.startswith(prefix):
                continue
            yield storage_volume.VolumeExternalWrapper(volume=self._volume_external(volume), error=None)

    def _volume_external(self, volume):
        volume_config = storage_volume.VolumeConfig(
            name=volume.name,
            internal_name=volume.creation_token,
            size=str(volume.quota_in_bytes),
            protocol=storage_volume.FILE,
            snapshot_dir=str(volume.snapshot_directory).lower(),
            unix_permissions=volume.unix_permissions,
            access_mode=storage_volume.READ_WRITE_MANY,
            service_level=volume.service_level,
        )
        return storage_volume.VolumeExternal(config=volume_config, pool=storage_volume.UNSET_POOL)

    def get_update_type(self, original):
        """Return the set of UpdateTypes between ``original`` and this driver."""
        if not isinstance(original, NASStorageDriver):
            return {common.UpdateType.INVALID_UPDATE}

        updates = set()
        if self.config.storage_prefix != original.config.storage_prefix:
            updates.add(common.UpdateType.PREFIX_CHANGE)
        if not common.are_same_credentials(self.config.credentials, original.config.credentials):
            updates.add(common.UpdateType.CREDENTIALS_CHANGE)
        return updates
