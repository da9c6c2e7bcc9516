"""Event collectors that build per-measurement state from CDP events."""
