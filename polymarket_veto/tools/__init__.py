"""Tool catalog and argument validation."""
