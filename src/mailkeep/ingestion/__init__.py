"""Mail ingestion connectors."""
