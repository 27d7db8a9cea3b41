"""Utility functions for the Azure NetApp Files driver."""

import ipaddress
import re
from typing import Any, Iterable, Optional

from anf_storage import exceptions
from anf_storage.drivers.azure import api
from anf_storage.storage import attributes as sa

NFS_VERSION_3 = "3"
NFS_VERSION_4 = "4"
NFS_VERSION_41 = "4.1"

SUPPORTED_NFS_VERSIONS = (NFS_VERSION_3, NFS_VERSION_4, NFS_VERSION_41)

STORAGE_PREFIX_RE = re.compile(r"^$|^[a-zA-Z][a-zA-Z-]*$")
VOLUME_NAME_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9_-]{0,63}$")
CREATION_TOKEN_RE = re.compile(r"^[a-zA-Z][a-zA-Z0-9-]{0,79}$")
CSI_NAME_RE = re.compile(
    r"^pvc-[0-9a-fA-F]{8}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{4}-[0-9a-fA-F]{12}$"
)
UNIX_PERMISSIONS_RE = re.compile(r"^[0-7]{4}$")


def validate_volume_name(name: str) -> None:
    """Validate an ANF volume name.

    Raises:
        ValidationError: If the name is not 1-64 characters long, led by a
            letter and made of letters, digits, hyphens and underscores
    """
    if not name or not VOLUME_NAME_RE.fullmatch(name):
        raise exceptions.ValidationError(
            details=(
                f"volume name '{name}' is not allowed; it must be 1-64 characters long, "
                "begin with a letter, and contain only letters, digits, hyphens, and underscores"
            )
        )


def validate_creation_token(token: str) -> None:
    """Validate an ANF creation token (the volume's internal name).

    Raises:
        ValidationError: If the token is not 1-80 characters long, led by a
            letter and made of letters, digits and hyphens
    """
    if not token or not CREATION_TOKEN_RE.fullmatch(token):
        raise exceptions.ValidationError(
            details=(
                f"volume internal name '{token}' is not allowed; it must be 1-80 characters long, "
                "begin with a letter, and contain only letters, digits, and hyphens"
            )
        )


def validate_storage_prefix(prefix: str) -> None:
    if not STORAGE_PREFIX_RE.fullmatch(prefix or ""):
        raise exceptions.ValidationError(
            details="storage prefix may only contain letters and hyphens and must begin with a letter"
        )


def validate_octal_unix_permissions(permissions: str) -> None:
    if not UNIX_PERMISSIONS_RE.fullmatch(permissions or ""):
        raise exceptions.ValidationError(
            details=f"{permissions} is not a valid octal unix permissions value"
        )


def validate_export_rule(export_rule: str) -> None:
    """Validate a comma-separated list of IP addresses and CIDRs."""
    for rule in (export_rule or "").split(","):
        rule = rule.strip()
        try:
            if "/" in rule:
                ipaddress.ip_network(rule, strict=False)
            else:
                ipaddress.ip_address(rule)
        except ValueError:
            raise exceptions.ValidationError(
                details=f"invalid address/CIDR for exportRule: {rule}"
            )


def get_nfs_version_from_mount_options(
    mount_options: str,
    default_version: str = NFS_VERSION_3,
    supported_versions: Iterable[str] = SUPPORTED_NFS_VERSIONS,
) -> str:
    """Extract the NFS version from a mount options string.

    Both ``nfsvers=`` and ``vers=`` are recognized; the last occurrence
    wins. Leading dashes (``-o``) and whitespace are ignored.

    Raises:
        ValidationError: If the version is not supported
    """
    version = ""
    for option in re.split(r"[\s,]+", mount_options or ""):
        option = option.lstrip("-")
        if option.startswith("nfsvers="):
            version = option[len("nfsvers="):]
        elif option.startswith("vers="):
            version = option[len("vers="):]

    if not version:
        return default_version

    supported = list(supported_versions)
    if version not in supported:
        raise exceptions.ValidationError(
            details=f"unsupported NFS version: {version}; supported versions are {', '.join(supported)}"
        )
    return version


def resolve_attribute(
    volume_value: Optional[str],
    pool: Any = None,
    attribute: Optional[str] = None,
    global_value: Optional[str] = None,
    default: str = "",
) -> str:
    """Resolve one attribute by precedence.

    The first non-blank value wins, in order: the per-volume value, the
    pool's internal attribute, the backend-wide value, the constant
    default.
    """
    if volume_value:
        return volume_value
    if pool is not None and attribute:
        pool_value = pool.internal_attributes.get(attribute)
        if pool_value:
            return pool_value
    if global_value:
        return global_value
    return default


def title(value: Optional[str]) -> str:
    """Title-case a service level ("premium" -> "Premium")."""
    if not value:
        return ""
    return value[:1].upper() + value[1:].lower()


def build_export_rule(allowed_clients: str, protocol_type: str, kerberos: str = "") -> api.ExportRule:
    """Build the single export rule for a new NFS volume.

    Kerberos volumes are NFSv4.1 only and get exactly one kerberos
    read-write flag; the plain unix read-write flags are cleared.
    """
    rule = api.ExportRule(
        allowed_clients=allowed_clients,
        nfsv3=protocol_type == api.PROTOCOL_TYPE_NFSV3,
        nfsv41=protocol_type == api.PROTOCOL_TYPE_NFSV41,
        rule_index=1,
        unix_read_only=False,
        unix_read_write=True,
    )

    if kerberos:
        rule.nfsv3 = False
        rule.nfsv41 = True
        rule.unix_read_only = False
        rule.unix_read_write = False
        set_kerberos_read_write(rule, kerberos)
    return rule


def set_kerberos_read_write(rule: api.ExportRule, kerberos: str) -> None:
    if kerberos == api.MOUNT_OPTION_KERBEROS5:
        rule.kerberos5_read_write = True
    elif kerberos == api.MOUNT_OPTION_KERBEROS5I:
        rule.kerberos5i_read_write = True
    elif kerberos == api.MOUNT_OPTION_KERBEROS5P:
        rule.kerberos5p_read_write = True
    else:
        raise exceptions.ValidationError(details=f"unsupported kerberos type: {kerberos}")


def construct_volume_access_path(volume_config, volume: api.FileSystem, protocol: str) -> str:
    """Return the mount path of a volume.

    Read-only clones are mounted from the source volume's hidden
    snapshot directory.
    """
    if protocol == sa.NFS:
        if volume_config.read_only_clone:
            return "/{}/.snapshot/{}".format(
                volume_config.clone_source_volume_internal, volume_config.clone_source_snapshot
            )
        return "/" + volume.creation_token
    if protocol == sa.SMB:
        if volume_config.read_only_clone:
            return "\\{}\\~snapshot\\{}".format(
                volume_config.clone_source_volume_internal, volume_config.clone_source_snapshot
            )
        return "\\" + volume.creation_token
    return ""
