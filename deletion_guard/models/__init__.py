"""Data models for deletion requests, backups and audit entries."""
