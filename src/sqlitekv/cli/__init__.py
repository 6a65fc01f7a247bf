"""Command-line interface for sqlitekv."""
