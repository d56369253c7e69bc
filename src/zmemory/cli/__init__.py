"""CLI command groups for zmemory."""
