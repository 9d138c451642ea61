"""Command line interface (ptb)."""
