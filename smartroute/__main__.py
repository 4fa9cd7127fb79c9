"""
Entry point for running smartroute as a module: python -m smartroute
"""

from smartroute.cli.commands import app

if __name__ == "__main__":
    app()
