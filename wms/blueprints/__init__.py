"""
wms/blueprints/__init__.py

JSON API blueprints. Shared request helpers live here; each blueprint
package exposes its Blueprint object from routes.py.
"""

from __future__ import annotations

from typing import Any, Dict

from flask import request

from ..errors import ValidationError


def json_payload() -> Dict[str, Any]:
    """Request body as a dict. Missing or non-object bodies are a ValidationError."""
    payload = request.get_json(silent=True)
    if payload is None:
        payload = {}
    if not isinstance(payload, dict):
        raise ValidationError("Request body must be a JSON object.")
    return payload
