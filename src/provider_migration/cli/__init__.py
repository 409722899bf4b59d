"""Command-line interface for Provider Migrator."""
