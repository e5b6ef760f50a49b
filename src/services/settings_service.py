"""Loading and saving of :class:`MapSettings`, and access-token discovery."""

from __future__ import annotations

import logging
import os
from pathlib import Path

import tomlkit
from dotenv import load_dotenv
from pydantic import ValidationError
from tomlkit.exceptions import TOMLKitError

from domain.models import MapSettings
from infrastructure.http.client import resolve_cache_dir, resolve_viewport_path
from shared.constants import ACCESS_TOKEN_ENV_VAR, SETTINGS_FILE_NAME
from shared.portable import get_app_dir, get_local_data_dir

logger = logging.getLogger(__name__)


def default_settings_path() -> Path:
    return get_local_data_dir() / SETTINGS_FILE_NAME


def load_settings(path: str | Path | None = None) -> MapSettings:
    """Read settings from TOML; a missing file gives the defaults.

    Raises:
        ValueError: The file exists but is not valid TOML or fails validation.
    """
    settings_path = Path(path) if path is not None else default_settings_path()
    if not settings_path.exists():
        logger.info('Settings file %s not found, using defaults', settings_path)
        return MapSettings()
    try:
        data = tomlkit.parse(settings_path.read_text(encoding='utf-8')).unwrap()
        settings = MapSettings.model_validate(data)
    except (TOMLKitError, ValidationError) as e:
        msg = f'Invalid settings file {settings_path}: {e}'
        raise ValueError(msg) from e
    logger.info('Settings loaded from %s', settings_path)
    return settings


def save_settings(
    settings: MapSettings,
    path: str | Path | None = None,
    *,
    include_token: bool = False,
) -> Path:
    """Write settings as TOML. The token is left out unless asked for."""
    settings_path = Path(path) if path is not None else default_settings_path()
    exclude = None if include_token else {'access_token'}
    data = settings.model_dump(mode='json', exclude_none=True, exclude=exclude)
    settings_path.parent.mkdir(parents=True, exist_ok=True)
    settings_path.write_text(tomlkit.dumps(data), encoding='utf-8')
    return settings_path


def _env_candidates() -> list[Path]:
    app_dir = get_app_dir()
    data_dir = get_local_data_dir()
    cwd = Path.cwd()
    return [
        app_dir / '.secrets.env',
        app_dir / '.env',
        data_dir / '.secrets.env',
        data_dir / '.env',
        cwd / '.secrets.env',
        cwd / '.env',
    ]


def resolve_access_token(settings: MapSettings) -> str:
    """Token from the settings, else from MAP_ACCESS_TOKEN (after loading a .env file)."""
    if settings.access_token.strip():
        return settings.access_token.strip()

    for candidate in _env_candidates():
        if candidate.is_file():
            load_dotenv(candidate)
            logger.debug('Environment loaded from %s', candidate)
            break

    token = os.getenv(ACCESS_TOKEN_ENV_VAR, '').strip()
    if token:
        logger.info('Access token loaded from environment')
    else:
        logger.warning('Access token not found; tiles will not be downloaded')
    return token


def resolve_settings(settings: MapSettings) -> MapSettings:
    """Fill in the token and the application-local default paths."""
    return settings.model_copy(
        update={
            'access_token': resolve_access_token(settings),
            'cache_dir': settings.cache_dir or resolve_cache_dir(),
            'viewport_path': settings.viewport_path or resolve_viewport_path(),
        }
    )
