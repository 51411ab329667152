"""Command-line interface for sven."""
