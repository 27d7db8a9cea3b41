"""Storage pool capability offers advertised to the host orchestrator."""

from typing import Dict, Optional

# Offer names
BACKEND_TYPE = "backendType"
SNAPSHOTS = "snapshots"
CLONES = "clones"
ENCRYPTION = "encryption"
REPLICATION = "replication"
LABELS = "labels"
NAS_TYPE = "nasType"
REGION = "region"
ZONE = "zone"

# NAS types
NFS = "nfs"
SMB = "smb"


class StringOffer:
    """Offer of a single string value."""

    def __init__(self, value: str):
        self.value = value

    def __eq__(self, other):
        return isinstance(other, StringOffer) and other.value == self.value

    def __repr__(self):
        return "StringOffer(%r)" % self.value


class BoolOffer:
    """Offer of a boolean capability."""

    def __init__(self, value: bool):
        self.value = bool(value)

    def __eq__(self, other):
        return isinstance(other, BoolOffer) and other.value == self.value

    def __repr__(self):
        return "BoolOffer(%r)" % self.value


class LabelOffer:
    """Offer of a label set.

    Later label maps override earlier ones, so backend-wide labels can be
    refined per virtual pool.
    """

    def __init__(self, *label_maps: Optional[Dict[str, str]]):
        self._labels: Dict[str, str] = {}
        for label_map in label_maps:
            if label_map:
                self._labels.update(label_map)

    def labels(self) -> Dict[str, str]:
        return dict(self._labels)

    def __eq__(self, other):
        return isinstance(other, LabelOffer) and other.labels() == self.labels()

    def __repr__(self):
        return "LabelOffer(%r)" % self._labels
