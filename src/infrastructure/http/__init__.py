"""HTTP client infrastructure."""
from infrastructure.http.client import (
    default_headers,
    make_http_session,
    resolve_cache_dir,
    resolve_viewport_path,
    validate_access_token,
)

__all__ = [
    'default_headers',
    'make_http_session',
    'resolve_cache_dir',
    'resolve_viewport_path',
    'validate_access_token',
]
