"""Host-facing storage data model."""
