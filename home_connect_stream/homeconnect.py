from __future__ import annotations
import logging
from typing import Optional, Sequence
from datetime import datetime
from collections.abc import Callable
from dataclasses import dataclass
from dataclasses_json import dataclass_json, Undefined

from .const import Events, ConnectionStatus, ENDPOINT_APPLIANCES, DEFAULT_LANG
from .api import HomeConnectApi
from .auth import AbstractAuth
from .rate_tracker import RateTracker
from .scheduler import Scheduler
from .stream import StreamManager
from .subscribers import SubscriberRegistry
from .event import ApplianceEvent

_LOGGER = logging.getLogger(__name__)


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass
class StreamStatus():
    """ The observable status of the Home Connect connection """
    connection_status:str
    status:ConnectionStatus
    api_url:str
    last_event_received:Optional[datetime] = None
    rate_limit_remaining:Optional[int] = None
    rate_limit_limit:Optional[int] = None
    rate_limited_until:Optional[datetime] = None


class HomeConnect():
    """ The main class that owns the event stream, the API wrapper and the subscriber registry

    The application registers a subscriber per appliance and receives the appliance events,
    appliance commands are sent with the async_* API methods.
    """

    def __init__(self,
        auth:AbstractAuth,
        lang:str=None,
        scheduler:Scheduler=None,
        clock:Callable[[], datetime]=None
    ):
        self._auth = auth
        self._lang = lang or DEFAULT_LANG
        self._rate_tracker = RateTracker(clock)
        self._callbacks = SubscriberRegistry()
        self._api = HomeConnectApi(auth, self._rate_tracker, self._lang)
        self._stream = StreamManager(auth, self._callbacks, self._rate_tracker, self._lang, scheduler, clock)

    @classmethod
    async def async_create(cls, auth:AbstractAuth, lang:str=None, auto_connect:bool=True, **kwargs) -> HomeConnect:
        """ Factory for creating a HomeConnect object and optionally connecting the event stream

        Subscribers should be registered before connecting so that no events are missed
        """
        hc = cls(auth, lang, **kwargs)
        if auto_connect:
            await hc.async_connect()
        return hc

    async def async_close(self) -> None:
        """ Close the event stream and clear all the registered callbacks """
        await self._stream.async_close()
        self._callbacks.clear_all_callbacks()

    api = property(lambda self: self._api)
    stream = property(lambda self: self._stream)
    rate_tracker = property(lambda self: self._rate_tracker)


    #region - Connection commands and status

    async def async_connect(self) -> None:
        """ Connect the event stream """
        await self._stream.async_connect()

    async def async_disconnect(self) -> None:
        """ Disconnect the event stream """
        await self._stream.async_disconnect()

    async def async_refresh(self) -> None:
        """ Reconnect the event stream """
        await self._stream.async_refresh()

    def clear_rate_limit(self) -> None:
        """ Clear the rate limit state for a manual recovery """
        self._stream.clear_rate_limit()

    def set_api_url(self, url:str) -> None:
        """ Switch the API host, for example to the simulator """
        self._auth.host = url
        _LOGGER.info("API URL set to: %s", url)

    def get_status(self) -> StreamStatus:
        """ Return a snapshot of the observable status fields """
        quota = self._rate_tracker.quota
        return StreamStatus(
            connection_status = self._stream.status_str,
            status = self._stream.status,
            api_url = self._auth.host,
            last_event_received = self._stream.last_event_received,
            rate_limit_remaining = quota.remaining,
            rate_limit_limit = quota.limit,
            rate_limited_until = self._stream.connection.rate_limited_until
        )

    #endregion

    #region - Subscribers and callbacks

    def register_subscriber(self, haId:str, callback:Callable[[ApplianceEvent], None], keys:str|Sequence[str]=None) -> None:
        """ Register a subscriber for the events of an appliance, see SubscriberRegistry.register_subscriber() """
        self._callbacks.register_subscriber(haId, callback, keys)

    def deregister_subscriber(self, haId:str, callback:Callable[[ApplianceEvent], None], keys:str|Sequence[str]=None) -> None:
        """ Clear a subscriber that was previously registered """
        self._callbacks.deregister_subscriber(haId, callback, keys)

    def register_callback(self, callback:Callable, keys:Events|Sequence[Events]) -> None:
        """ Register an application callback for connectivity, resync and unhandled notifications """
        self._callbacks.register_callback(callback, keys)

    def clear_all_callbacks(self):
        """ Clear all the registered callbacks """
        self._callbacks.clear_all_callbacks()

    #endregion

    #region - Appliance API

    async def async_get_home_appliances(self) -> list[dict]:
        """ Get the list of the appliances paired with the account """
        response = await self._api.async_get(ENDPOINT_APPLIANCES)
        return response.data.get('homeappliances', []) if response.data else []

    async def async_get_home_appliance(self, haId:str) -> dict | None:
        """ Get the details of an appliance """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}")
        return response.data

    async def async_get_available_programs(self, haId:str) -> list[dict]:
        """ Get the programs that are currently available on the appliance """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/programs/available")
        return response.data.get('programs', []) if response.data else []

    async def async_get_available_program(self, haId:str, program_key:str) -> dict | None:
        """ Get an available program with its options """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/programs/available/{program_key}")
        return response.data

    async def async_get_active_program(self, haId:str) -> dict | None:
        """ Get the running program, None when the appliance is idle """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/programs/active")
        if response.status == 404:
            return None
        return response.data

    async def async_set_active_program(self, haId:str, program_key:str, options:Sequence[dict]=None) -> None:
        """ Start a program """
        _LOGGER.info("Starting program %s on %s", program_key, haId)
        await self._api.async_put(f"{ENDPOINT_APPLIANCES}/{haId}/programs/active", self._program_data(program_key, options))

    async def async_stop_active_program(self, haId:str) -> None:
        """ Stop the running program """
        _LOGGER.info("Stopping program on %s", haId)
        await self._api.async_delete(f"{ENDPOINT_APPLIANCES}/{haId}/programs/active")

    async def async_get_selected_program(self, haId:str) -> dict | None:
        """ Get the selected program """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/programs/selected")
        return response.data

    async def async_set_selected_program(self, haId:str, program_key:str, options:Sequence[dict]=None) -> None:
        """ Select a program without starting it """
        _LOGGER.debug("Setting selected program %s on %s", program_key, haId)
        await self._api.async_put(f"{ENDPOINT_APPLIANCES}/{haId}/programs/selected", self._program_data(program_key, options))

    async def async_set_selected_program_option(self, haId:str, option_key:str, value) -> None:
        """ Set an option of the selected program """
        _LOGGER.debug("Setting program option %s=%s on %s", option_key, value, haId)
        await self._api.async_put(
            f"{ENDPOINT_APPLIANCES}/{haId}/programs/selected/options/{option_key}",
            { "key": option_key, "value": value }
        )

    async def async_get_status(self, haId:str) -> list[dict]:
        """ Get the status values of an appliance """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/status")
        return response.data.get('status', []) if response.data else []

    async def async_get_settings(self, haId:str) -> list[dict]:
        """ Get the settings of an appliance """
        response = await self._api.async_get(f"{ENDPOINT_APPLIANCES}/{haId}/settings")
        return response.data.get('settings', []) if response.data else []

    async def async_set_setting(self, haId:str, setting_key:str, value) -> None:
        """ Apply a setting, for example the power state """
        _LOGGER.info("Setting %s=%s on %s", setting_key, value, haId)
        await self._api.async_put(
            f"{ENDPOINT_APPLIANCES}/{haId}/settings/{setting_key}",
            { "key": setting_key, "value": value }
        )

    async def async_send_command(self, haId:str, command_key:str, value=True) -> None:
        """ Send a command, for example BSH.Common.Command.PauseProgram """
        await self._api.async_put(
            f"{ENDPOINT_APPLIANCES}/{haId}/commands/{command_key}",
            { "key": command_key, "value": value }
        )

    @staticmethod
    def _program_data(program_key:str, options:Sequence[dict]=None) -> dict:
        data = { "key": program_key }
        if options:
            data["options"] = list(options) if isinstance(options, (list, tuple)) else [ options ]
        return data

    #endregion
