"""Seaguard - compliance validation and audit engine for passenger ferries."""

from .version import APP_VERSION

__version__ = APP_VERSION
