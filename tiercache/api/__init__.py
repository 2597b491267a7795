"""
tiercache HTTP integration for FastAPI applications.
"""

from tiercache.api.app import create_app

__all__ = ["create_app"]
