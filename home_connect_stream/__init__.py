from .homeconnect import HomeConnect, StreamStatus
from .auth import AuthManager, AbstractAuth
from .common import HomeConnectError
from .const import Events, ConnectionStatus, StreamSignal
from .event import ApplianceEvent
from .rate_tracker import RateTracker, RateQuota
from .stream import StreamManager, Connection
