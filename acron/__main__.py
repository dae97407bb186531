"""Entry point for running acron as a module: python -m acron"""

from acron.cli.commands import app

if __name__ == "__main__":
    app()
