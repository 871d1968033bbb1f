"""
wms/blueprints/auth/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose auth_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import auth_bp  # noqa: F401
