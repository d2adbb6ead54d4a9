"""Helpers for JSON request handling in blueprints."""
from flask import request

from backoffice.exceptions import ValidationError


def get_json_payload():
    """Request body as a dict; anything else is a ValidationError."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        raise ValidationError('Corps de requête JSON attendu.')
    return payload
