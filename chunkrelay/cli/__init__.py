"""Command-line interface for chunkrelay."""
