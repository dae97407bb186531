"""acron - a lightweight periodic job runner."""

__version__ = "0.1.0"
__logo__ = "⏱"
