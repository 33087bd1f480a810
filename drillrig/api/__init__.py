"""
API module for the Drilling Rig Controller.

Provides REST API for:
- Controller status and commands
- Bench device values
- Status panel and system log
"""

from .server import create_app, APIServer

__all__ = ['create_app', 'APIServer']
