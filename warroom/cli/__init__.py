"""
CLI Module - typer command line for running assessments.
"""

from warroom.cli.main import app, main

__all__ = ["app", "main"]
