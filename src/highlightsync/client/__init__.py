"""Client module - Sync agent components."""
