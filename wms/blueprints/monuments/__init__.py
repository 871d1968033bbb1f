"""
wms/blueprints/monuments/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose monuments_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import monuments_bp  # noqa: F401
