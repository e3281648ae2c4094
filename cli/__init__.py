"""Command line interface for flavnet."""
