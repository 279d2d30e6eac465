"""
REST API for the Query Engine

Provides HTTP access to query execution and saved query management.
"""

from .app import create_app

__all__ = ["create_app"]
