"""Main entry point for the slippy map viewer."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path
from typing import TYPE_CHECKING

from infrastructure.http.client import resolve_cache_dir, validate_access_token
from services.settings_service import load_settings, resolve_settings
from shared.constants import LOG_FILE_NAME, LOG_SUBDIR, SNAPSHOT_DEFAULT_SIZE
from shared.diagnostics import log_memory_usage, log_thread_status
from shared.portable import get_local_data_dir, is_portable_mode
from tiles.cache import DiskTileCache

if TYPE_CHECKING:
    from domain.models import MapSettings

logger = logging.getLogger(__name__)


def setup_logging(*, verbose: bool = False) -> Path:
    """Configure application logging to the local data directory.

    Returns:
        Path of the log file.
    """
    log_dir = get_local_data_dir() / LOG_SUBDIR
    log_dir.mkdir(parents=True, exist_ok=True)
    log_file = log_dir / LOG_FILE_NAME

    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s',
        handlers=[
            logging.StreamHandler(sys.stdout),
            logging.FileHandler(str(log_file), encoding='utf-8'),
        ],
    )
    return log_file


def parse_size(value: str) -> tuple[int, int]:
    """Parse ``WIDTHxHEIGHT`` into a pair of positive ints."""
    try:
        width_s, height_s = value.lower().split('x', 1)
        width, height = int(width_s), int(height_s)
    except ValueError:
        msg = f'Expected WIDTHxHEIGHT, got {value!r}'
        raise argparse.ArgumentTypeError(msg) from None
    if width <= 0 or height <= 0:
        msg = f'Size must be positive, got {value!r}'
        raise argparse.ArgumentTypeError(msg)
    return width, height


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='Slippy map viewer for WMTS satellite tiles'
    )
    parser.add_argument('--config', type=Path, help='Settings file (TOML)')
    parser.add_argument('--verbose', action='store_true', help='Enable debug logging')

    actions = parser.add_mutually_exclusive_group()
    actions.add_argument(
        '--snapshot',
        type=Path,
        metavar='PATH',
        help='Render one view to a PNG file instead of opening the window',
    )
    actions.add_argument(
        '--check-token', action='store_true', help='Verify the access token and exit'
    )
    actions.add_argument(
        '--cache-stats', action='store_true', help='Print tile cache statistics and exit'
    )
    actions.add_argument(
        '--clear-cache', action='store_true', help='Delete every cached tile and exit'
    )

    snapshot = parser.add_argument_group('snapshot options')
    snapshot.add_argument('--lon', type=float, help='Center longitude')
    snapshot.add_argument('--lat', type=float, help='Center latitude')
    snapshot.add_argument('--zoom', type=float, help='Zoom level (2-18)')
    snapshot.add_argument(
        '--size',
        type=parse_size,
        default=SNAPSHOT_DEFAULT_SIZE,
        metavar='WxH',
        help='Image size in pixels (default: %(default)s)',
    )
    return parser


def _format_bytes(size: int) -> str:
    value = float(size)
    for unit in ('B', 'KB', 'MB', 'GB'):
        if value < 1024 or unit == 'GB':
            return f'{value:.1f} {unit}'
        value /= 1024
    return f'{value:.1f} GB'


def _run_cache_stats(cache_dir: Path) -> int:
    stats = DiskTileCache(cache_dir).get_stats()
    print(f'Cache directory: {cache_dir}')
    print(f'Total: {stats.total_tiles} tiles, {_format_bytes(stats.total_size_bytes)}')
    for zoom in sorted(stats.tiles_by_zoom):
        print(
            f'  z{zoom:>2}: {stats.tiles_by_zoom[zoom]} tiles, '
            f'{_format_bytes(stats.size_by_zoom[zoom])}'
        )
    return 0


def _run_clear_cache(cache_dir: Path) -> int:
    removed = DiskTileCache(cache_dir).clear()
    print(f'Removed {removed} tiles from {cache_dir}')
    return 0


def _run_check_token(token: str, base_url: str) -> int:
    try:
        asyncio.run(validate_access_token(token, base_url))
    except RuntimeError as e:
        print(f'Token check failed: {e}', file=sys.stderr)
        return 1
    print('Access token is valid')
    return 0


def _run_snapshot(settings: MapSettings, args: argparse.Namespace) -> int:
    from services.snapshot import render_snapshot

    center = None
    if args.lon is not None or args.lat is not None:
        center = (
            args.lon if args.lon is not None else settings.initial_longitude,
            args.lat if args.lat is not None else settings.initial_latitude,
        )
    stats = render_snapshot(
        settings,
        args.snapshot,
        size=args.size,
        center=center,
        zoom=args.zoom,
    )
    print(
        f'Saved {args.snapshot}: {stats.drawn} tiles, '
        f'{stats.fallback} from coarser zoom, {stats.empty} empty'
    )
    return 0


def _run_gui(settings: MapSettings) -> int:
    from gui.app import create_application

    log_memory_usage('before creating application')
    app, window = create_application(settings)
    log_memory_usage('after creating application')
    app.setQuitOnLastWindowClosed(True)
    window.show()
    logger.info('Application started successfully')
    result = app.exec()
    log_thread_status('APPLICATION_SHUTDOWN')
    return result


def main(argv: list[str] | None = None) -> int:
    """Main application entry point."""
    args = build_parser().parse_args(argv)
    log_file = setup_logging(verbose=args.verbose)
    logger.info('Starting Slippy Map (portable=%s, log=%s)', is_portable_mode(), log_file)
    log_memory_usage('startup')

    try:
        settings = resolve_settings(load_settings(args.config))
    except ValueError as e:
        logger.error('%s', e)
        return 2

    cache_dir = settings.cache_dir or resolve_cache_dir()
    try:
        if args.cache_stats:
            return _run_cache_stats(cache_dir)
        if args.clear_cache:
            return _run_clear_cache(cache_dir)
        if args.check_token:
            return _run_check_token(settings.access_token, settings.base_url)
        if args.snapshot is not None:
            return _run_snapshot(settings, args)
        return _run_gui(settings)
    except Exception as e:
        logger.error('Failed to run: %s', e, exc_info=True)
        return 1


if __name__ == '__main__':
    sys.exit(main())
