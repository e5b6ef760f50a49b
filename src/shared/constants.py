from enum import Enum

# Base tile size of the Web Mercator pyramid (px)
TILE_SIZE = 256

# Zoom range accepted by the tile service
MIN_TILE_ZOOM = 1
MAX_ZOOM = 18

# Lowest zoom the viewport may show; also the floor for coarser-tile fallback
MIN_VIEW_ZOOM = 2

# Latitude limit of the square Web Mercator world (degrees)
MERCATOR_MAX_LAT_DEG = 85.0511287798066
WORLD_LNG_SPAN_DEG = 360.0
WORLD_LNG_HALF_SPAN_DEG = 180.0

# Initial viewport when nothing has been persisted yet
DEFAULT_ZOOM = 3.0
DEFAULT_CENTER_LNG = 116.3
DEFAULT_CENTER_LAT = 39.9

# --- WMTS tile endpoint
# {shard} is replaced by (column + row) % WMTS_SHARD_COUNT
WMTS_BASE_URL = 'https://t{shard}.tianditu.gov.cn/img_w/wmts'
WMTS_SHARD_COUNT = 8
WMTS_SERVICE = 'WMTS'
WMTS_REQUEST = 'GetTile'
WMTS_VERSION = '1.0.0'
WMTS_LAYER = 'img'
WMTS_STYLE = 'default'
WMTS_TILE_MATRIX_SET = 'w'
WMTS_FORMAT = 'tiles'

# The upstream service checks browser-like headers in addition to the token
HTTP_USER_AGENT = 'Mozilla/5.0'
HTTP_REFERER = 'https://www.tianditu.gov.cn/'
HTTP_ACCEPT = 'image/webp,image/apng,image/*,*/*;q=0.8'
HTTP_ACCEPT_ENCODING = 'gzip, deflate'

HTTP_OK = 200
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_2XX_MIN = 200
HTTP_2XX_MAX = 300

# Number of characters of an error body kept in the log
HTTP_ERROR_BODY_LOG_LIMIT = 200

# Timeout for the one-off token check (seconds); tile requests use transport defaults
TOKEN_CHECK_TIMEOUT_S = 10

# Environment variable holding the access token
ACCESS_TOKEN_ENV_VAR = 'MAP_ACCESS_TOKEN'

# --- Local storage
APP_DIR_NAME = 'SlippyMap'
HOME_FALLBACK_DIR_NAME = '.slippymap'
TILE_CACHE_SUBDIR = 'MapCache'
TILE_FILE_EXT = '.png'
VIEWPORT_FILE_NAME = 'viewport.json'
SETTINGS_FILE_NAME = 'settings.toml'
LOG_SUBDIR = 'log'
LOG_FILE_NAME = 'slippymap.log'

# --- Loading and prefetch
# Tiles fetched from the network at the same time
MAX_CONCURRENT_FETCHES = 8
# Neighborhood radius (tiles) warmed around the center tile
PREFETCH_RADIUS = 2
# Window at zoom + 1, relative to the doubled center: [2c - 1, 2c + 2]
NEXT_ZOOM_PREFETCH_BEFORE = 1
NEXT_ZOOM_PREFETCH_AFTER = 2
# Log process memory after every N settled tiles
PIPELINE_LOG_MEMORY_EVERY_TILES = 200
# Seconds to wait for the loader thread on shutdown
PIPELINE_STOP_TIMEOUT_S = 5.0

# --- Redraw
# ~60 Hz
REDRAW_INTERVAL_MS = 16

# Snapshot rendering (headless)
SNAPSHOT_DEFAULT_SIZE = (1024, 768)
SNAPSHOT_SETTLE_TIMEOUT_S = 30.0
SNAPSHOT_BACKGROUND = (0, 0, 0)


class MissingTilePolicy(str, Enum):
    """What to draw for a cell with neither the tile nor a coarser ancestor."""

    GAP = 'gap'  # Leave the cell untouched
    PLACEHOLDER = 'placeholder'  # Fill the cell with a flat color


DEFAULT_PLACEHOLDER_COLOR = (224, 224, 224)
