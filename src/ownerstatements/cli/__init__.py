"""
Command-Line Interface Package

Click command group exposing datastore setup and the vendor import workflow.
"""

from .main import main

__all__ = ["main"]
