"""CLI entry point for python -m vidcast"""
from vidcast.cli.commands import app

if __name__ == "__main__":
    app()
