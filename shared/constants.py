"""
Shared constants used across the client.
"""

APP_NAME = "QingYu"
APP_VERSION = "1.0.0"

# Server
API_VERSION_PATH = "/api/v1"
DEBUG_API_URL = "http://localhost:3000"
RELEASE_API_URL = "https://api.qingyu.app"
DEFAULT_LANGUAGE = "zh-Hans"

# Network Settings
DEFAULT_NETWORK_TIMEOUT = 30  # seconds
DEFAULT_DOWNLOAD_CHUNK_SIZE = 8192  # bytes
DEFAULT_PAGE_SIZE = 20
NETWORK_WORKERS = 4

# Request headers
HEADER_DEVICE_ID = "X-Device-ID"
HEADER_DEVICE_MODEL = "X-Device-Model"
HEADER_OS_VERSION = "X-OS-Version"
HEADER_APP_VERSION = "X-App-Version"

# Playback
POSITION_UPDATE_INTERVAL = 0.1  # seconds
COMPLETION_THRESHOLD = 0.1  # seconds before the end that count as finished
COMPLETION_RELOAD_DELAY = 0.05  # seconds

# Cache settings
DEFAULT_CACHE_SIZE_GB = 2
DEFAULT_AUDIO_QUALITY = "standard"
AUDIO_QUALITIES = ["standard", "high"]

# Configuration paths
DEFAULT_CONFIG_DIR = "~/.config/qingyu"
DEFAULT_CACHE_DIR = "~/.cache/qingyu"
LOCAL_STORE_FILENAME = "settings.json"

# Local store keys
KEY_AUTH_TOKEN = "authToken"
KEY_ANONYMOUS_USER_ID = "anonymousUserId"
KEY_DEVICE_ID = "deviceId"
KEY_LANGUAGE = "language"
