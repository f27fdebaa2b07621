"""
Shared utilities for the SongSplit API.

Request validation helpers and the API key decorator used by the
blueprints.
"""

import os
import secrets
from functools import wraps
from typing import Any

from flask import jsonify, request

# ============================================================
# Security Configuration
# ============================================================

API_KEY = os.getenv("SONGSPLIT_API_KEY", None)
# SECURITY: Default to requiring authentication for production safety
API_KEY_REQUIRED = os.getenv("SONGSPLIT_REQUIRE_AUTH", "true").lower() == "true"

MAX_RESULTS = 100
MAX_IDENTITY_LENGTH = 256
MAX_TEXT_LENGTH = 1024


# ============================================================
# Validation Utilities
# ============================================================

def bounded_limit(limit: int | None, max_limit: int = MAX_RESULTS) -> int:
    """Clamp a requested result limit to 1..max_limit."""
    if not limit:
        return max_limit
    return max(1, min(int(limit), max_limit))


def validate_json_schema(
    data: dict[str, Any],
    required_fields: dict[str, type],
    optional_fields: dict[str, type] | None = None,
    max_lengths: dict[str, int] | None = None
) -> tuple:
    """
    Validate JSON payload against a simple schema.

    Booleans are rejected where an int is expected, since bool is an
    int subclass in Python but never a valid id or amount.

    Args:
        data: The JSON data to validate
        required_fields: Dict mapping field names to expected types
        optional_fields: Dict mapping optional field names to expected types
        max_lengths: Dict mapping field names to maximum string lengths

    Returns:
        Tuple of (is_valid, error_message)
    """
    if not isinstance(data, dict):
        return False, "Request body must be a JSON object"

    def type_ok(value: Any, expected: type) -> bool:
        if expected is int and isinstance(value, bool):
            return False
        return isinstance(value, expected)

    for field_name, expected_type in required_fields.items():
        if field_name not in data:
            return False, f"Missing required field: {field_name}"
        if not type_ok(data[field_name], expected_type):
            return False, f"Field '{field_name}' must be of type {expected_type.__name__}"

    if optional_fields:
        for field_name, expected_type in optional_fields.items():
            if data.get(field_name) is not None and not type_ok(data[field_name], expected_type):
                return False, f"Field '{field_name}' must be of type {expected_type.__name__}"

    if max_lengths:
        for field_name, max_len in max_lengths.items():
            if isinstance(data.get(field_name), str) and len(data[field_name]) > max_len:
                return False, f"Field '{field_name}' exceeds maximum length of {max_len}"

    return True, None


# ============================================================
# Authentication Decorator
# ============================================================

def require_api_key(f):
    """Decorator to require API key authentication."""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        if not API_KEY_REQUIRED:
            return f(*args, **kwargs)

        provided_key = request.headers.get('X-API-Key')

        if not provided_key:
            return jsonify({
                "error": "API key required",
                "hint": "Provide API key in X-API-Key header"
            }), 401

        if not API_KEY:
            return jsonify({
                "error": "Server API key not configured",
                "hint": "Set SONGSPLIT_API_KEY environment variable"
            }), 503

        if not secrets.compare_digest(provided_key, API_KEY):
            return jsonify({"error": "Invalid API key"}), 403

        return f(*args, **kwargs)
    return decorated_function
