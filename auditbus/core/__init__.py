"""Core ingestion components: key derivation, stores and the ingestion saga."""
