"""Helpers shared by storage drivers."""

import base64
import enum
import json
import re
from dataclasses import asdict, dataclass
from typing import Any, Dict, List, Optional, Sequence

from oslo_log import log as logging
from oslo_utils import units

from anf_storage import exceptions

LOG = logging.getLogger(__name__)

# Replacement value for secrets in exported configuration
REDACTED = "<REDACTED>"

# Label key carrying telemetry on every provisioned volume
TELEMETRY_LABEL_TAG = "anf-storage"

# Driver contexts
CONTEXT_CSI = "csi"
CONTEXT_DOCKER = "docker"

DEFAULT_CSI_STORAGE_PREFIX = "anf_"
DEFAULT_DOCKER_STORAGE_PREFIX = "anfdvp_"

# Credential keys
KEY_NAME = "name"
KEY_TYPE = "type"

_SIZE_RE = re.compile(r"^(?P<size>[0-9]+(\.[0-9]+)?)\s*(?P<unit>[KMGTPE])?(?P<binary>i)?B?$")
_SIZE_FACTORS = {
    "K": (units.k, units.Ki),
    "M": (units.M, units.Mi),
    "G": (units.G, units.Gi),
    "T": (units.T, units.Ti),
    "P": (units.P, units.Pi),
    "E": (units.E, units.Ei),
}


class UpdateType(enum.Enum):
    """Kinds of change between two configurations of the same backend."""

    INVALID_UPDATE = "invalid_update"
    PREFIX_CHANGE = "prefix_change"
    CREDENTIALS_CHANGE = "credentials_change"


@dataclass
class AnfStorageBackendPool:
    """A discrete capacity pool reachable from a backend."""

    subscription_id: str
    resource_group: str
    netapp_account: str
    location: str
    capacity_pool: str

    def to_json(self) -> str:
        data = asdict(self)
        return json.dumps(
            {
                "subscriptionID": data["subscription_id"],
                "resourceGroup": data["resource_group"],
                "netappAccount": data["netapp_account"],
                "location": data["location"],
                "capacityPool": data["capacity_pool"],
            },
            separators=(",", ":"),
        )


def convert_size_to_bytes(size: str) -> str:
    """Convert a size string to a byte count string.

    Accepts plain byte counts as well as SI (K, M, G ... with optional B)
    and binary (Ki, Mi, Gi ... with optional B) suffixes.

    Examples:
        "107374182400" -> "107374182400"
        "100Gi" -> "107374182400"
        "1GB" -> "1000000000"

    Raises:
        ValueError: If the string is not a recognizable size
    """
    size = (size or "").strip()
    if size.isdigit():
        return str(int(size))

    match = _SIZE_RE.match(size.upper().replace("I", "i"))
    if not match or not match.group("unit"):
        raise ValueError(f"invalid size string: {size!r}")

    si_factor, binary_factor = _SIZE_FACTORS[match.group("unit")]
    factor = binary_factor if match.group("binary") else si_factor
    return str(int(float(match.group("size")) * factor))


def get_default_storage_prefix(driver_context: str) -> str:
    if driver_context == CONTEXT_DOCKER:
        return DEFAULT_DOCKER_STORAGE_PREFIX
    if driver_context == CONTEXT_CSI:
        return DEFAULT_CSI_STORAGE_PREFIX
    return ""


def check_min_volume_size(size_bytes: int, minimum_bytes: int) -> None:
    """Reject sizes below the absolute minimum.

    Raises:
        UnsupportedCapacityRangeError: If size_bytes is below minimum_bytes
    """
    if size_bytes < minimum_bytes:
        raise exceptions.UnsupportedCapacityRangeError(
            details=(
                f"requested volume size ({size_bytes} bytes) is too small; "
                f"the minimum volume size is {minimum_bytes} bytes"
            )
        )


def check_volume_size_limits(size_bytes: int, limit_volume_size: Optional[str]) -> int:
    """Enforce the configured volume size ceiling.

    Args:
        size_bytes: Requested size in bytes
        limit_volume_size: Configured limit (any size string), blank for none

    Returns:
        The limit in bytes, or 0 if no limit is configured

    Raises:
        UnsupportedCapacityRangeError: If the request exceeds the limit
        ConfigurationError: If the limit cannot be parsed
    """
    if not limit_volume_size:
        return 0

    try:
        limit_bytes = int(convert_size_to_bytes(limit_volume_size))
    except ValueError as e:
        raise exceptions.ConfigurationError(
            details=f"invalid value for limitVolumeSize: {limit_volume_size}; {e}"
        )

    LOG.debug(
        "Comparing requested size %s with volume size limit %s", size_bytes, limit_bytes
    )
    if size_bytes > limit_bytes:
        raise exceptions.UnsupportedCapacityRangeError(
            details=(
                f"requested size: {size_bytes} > the size limit: {limit_bytes}"
            )
        )
    return limit_bytes


def encode_storage_backend_pools(backend_pools: Sequence[AnfStorageBackendPool]) -> List[str]:
    """Encode each backend pool as base64 JSON.

    Raises:
        ConfigurationError: If no backend pools were supplied
    """
    if not backend_pools:
        raise exceptions.ConfigurationError(
            details="failed to encode backend pools; no storage backend pools supplied"
        )
    return [
        base64.b64encode(pool.to_json().encode("utf-8")).decode("ascii")
        for pool in backend_pools
    ]


def are_same_credentials(
    credentials1: Optional[Dict[str, Any]], credentials2: Optional[Dict[str, Any]]
) -> bool:
    """Compare two credential references by name and type."""
    credentials1 = credentials1 or {}
    credentials2 = credentials2 or {}
    return credentials1.get(KEY_NAME) == credentials2.get(KEY_NAME) and (
        credentials1.get(KEY_TYPE) == credentials2.get(KEY_TYPE)
    )
