"""Command-line entry points for finsim."""
