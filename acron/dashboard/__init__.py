"""Read-only HTTP dashboard for acron."""

from acron.dashboard.app import create_app

__all__ = ["create_app"]
