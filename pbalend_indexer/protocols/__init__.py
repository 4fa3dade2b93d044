"""Per-protocol event decoding and sources."""
