from enum import Enum

SIM_HOST = "https://simulator.home-connect.com"
API_HOST = "https://api.home-connect.com"
ENDPOINT_AUTHORIZE = "/security/oauth/authorize"
ENDPOINT_TOKEN = "/security/oauth/token"
ENDPOINT_APPLIANCES = "/api/homeappliances"
ENDPOINT_EVENTS = "/api/homeappliances/events"
DEFAULT_SCOPES = [ 'IdentifyAppliance', 'Monitor', 'Control', 'Settings'  ]
DEFAULT_LANG = "en-US"

MEDIA_TYPE_JSON = "application/vnd.bsh.sdk.v1+json"
MEDIA_TYPE_EVENT_STREAM = "text/event-stream"

HEADER_RATE_LIMIT_REMAINING = "X-RateLimit-Remaining"
HEADER_RATE_LIMIT_LIMIT = "X-RateLimit-Limit"

# Reconnect timing (seconds)
NORMAL_RECONNECT_DELAY = 300
BACKOFF_BASE_DELAY = 60
BACKOFF_MAX_DELAY = 300
MAX_RECONNECT_ATTEMPTS = 10
RATE_LIMIT_BUFFER = 300
DEFAULT_RATE_LIMIT_PERIOD = 86400
RESYNC_THRESHOLD = 300
RESYNC_DELAY = 2
REFRESH_PAUSE = 1

# HTTP quota handling
REQUEST_COOLDOWN = 60
RATE_LIMIT_LOW_WATER = 100

STREAM_CONNECT_TIMEOUT = 30
STREAM_READ_TIMEOUT = 180


class Events(str,Enum):
    """ Enum for the notifications sent to application level callbacks """
    CONNECTED = "CONNECTED"
    DISCONNECTED = "DISCONNECTED"
    PAIRED = "PAIRED"
    DEPAIRED = "DEPAIRED"
    RESYNC_NEEDED = "RESYNC_NEEDED"
    UNHANDLED = "UNHANDLED"


class ConnectionStatus(str, Enum):
    """ Enum for the state of the event stream connection """
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"
    RATE_LIMITED = "rate limited"
    FAILED = "failed"


class StreamSignal(str, Enum):
    """ Enum for the status signals emitted by the stream transport """
    START = "START"
    STOP = "STOP"
    ERROR = "ERROR"


# SSE event types with special handling
EVENT_TYPE_KEEP_ALIVE = "KEEP-ALIVE"
CONNECTIVITY_EVENT_TYPES = {
    "CONNECTED": Events.CONNECTED,
    "DISCONNECTED": Events.DISCONNECTED,
    "PAIRED": Events.PAIRED,
    "DEPAIRED": Events.DEPAIRED,
}
