"""CLI module for acron."""
