"""Command-line interface for the plugin host."""
