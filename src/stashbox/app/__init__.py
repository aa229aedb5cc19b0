"""Stashbox sharing service.

Usage:
    from stashbox.app import create_app, StashboxSettings
    app = create_app(StashboxSettings())
"""

from .main import AppDependencies, SharingServices, create_app
from .settings import StashboxSettings

__all__ = [
    "AppDependencies",
    "SharingServices",
    "StashboxSettings",
    "create_app",
]
