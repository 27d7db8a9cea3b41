"""Storage pools reported to the host orchestrator."""

import json
from typing import Any, Dict, List, Optional

from anf_storage.storage import attributes as sa

# Label key under which pool labels are written onto backend volumes
PROVISIONING_LABEL_TAG = "provisioning"


class StoragePool:
    """A (possibly virtual) pool of storage offered by one backend.

    ``attributes`` holds capability offers matched against storage class
    requests; ``internal_attributes`` holds the driver's per-pool defaults.
    Both are populated once during driver initialization.
    """

    def __init__(self, backend: Any, name: str):
        self.backend = backend
        self.name = name
        self.attributes: Dict[str, Any] = {}
        self.internal_attributes: Dict[str, Any] = {}
        self.supported_topologies: List[Dict[str, str]] = []

    def set_backend(self, backend: Any) -> None:
        self.backend = backend

    def get_labels_json(self, key: str, label_limit: int) -> str:
        """Return the pool labels as compact JSON nested under ``key``.

        Args:
            key: Top-level key for the label map
            label_limit: Maximum JSON length (0 means unlimited)

        Returns:
            JSON string, or an empty string if the pool has no labels

        Raises:
            ValueError: If the JSON exceeds the label limit
        """
        label_offer = self.attributes.get(sa.LABELS)
        if not isinstance(label_offer, sa.LabelOffer):
            return ""

        labels = label_offer.labels()
        if not labels:
            return ""

        labels_json = json.dumps({key: labels}, separators=(",", ":"), sort_keys=True)
        if label_limit and len(labels_json) > label_limit:
            raise ValueError(
                f"label length {len(labels_json)} exceeds the character limit "
                f"of {label_limit} characters"
            )
        return labels_json

    def __repr__(self):
        return f"StoragePool(name={self.name!r})"


def is_storage_pool_unset(pool: Optional[StoragePool]) -> bool:
    """Return True if no pool was supplied (e.g. clone of an imported volume)."""
    return pool is None or not pool.name


def allow_pool_label_overwrite(key: str, value: Optional[str]) -> bool:
    """Return True if a volume's pool label may be replaced.

    Only blank labels and labels written by this driver (a JSON object
    keyed by ``key``) may be overwritten.
    """
    if not value:
        return True
    try:
        parsed = json.loads(value)
    except ValueError:
        return False
    return isinstance(parsed, dict) and key in parsed
