"""
wms/blueprints/uploads/__init__.py

Blueprint package export.

IMPORTANT:
- Must expose uploads_bp for app factory registration.
- Keep import minimal to avoid side effects.
"""

from __future__ import annotations

from .routes import uploads_bp  # noqa: F401
