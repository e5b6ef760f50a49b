"""Services package - viewport interaction, persistence and map sessions."""

from services.map_session import MapSession
from services.settings_service import (
    default_settings_path,
    load_settings,
    resolve_access_token,
    resolve_settings,
    save_settings,
)
from services.snapshot import render_session_snapshot, render_snapshot
from services.viewport_controller import InteractionState, ViewportController
from services.viewport_store import ViewportStore

__all__ = [
    'InteractionState',
    'MapSession',
    'ViewportController',
    'ViewportStore',
    'default_settings_path',
    'load_settings',
    'render_session_snapshot',
    'render_snapshot',
    'resolve_access_token',
    'resolve_settings',
    'save_settings',
]
