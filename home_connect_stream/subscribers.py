from __future__ import annotations
import fnmatch
import inspect
import logging
import re
from typing import Callable
from collections.abc import Sequence

from .const import Events
from .event import ApplianceEvent

_LOGGER = logging.getLogger(__name__)

class SubscriberRegistry():
    """ Class for managing the per appliance subscribers and the application callbacks

    The registry is populated by the application, the event stream only looks up subscribers.
    """
    WILDCARD_KEY = "WILDCARD"

    def __init__(self) -> None:
        self._subscribers = {}
        self._callbacks = {}


    def register_subscriber(self,
        haId:str,
        callback:Callable[[ApplianceEvent], None] | Callable[[], None],
        keys:str|Sequence[str] = None
    ):
        """ Register a subscriber for the events of an appliance

        Parameters:
        * haId - The id of the appliance
        * callback - A function or coroutine function that receives the ApplianceEvent, the parameter is optional
        * keys - An optional event key or list of event keys, wildcards are supported. All events are delivered when omitted.
        """
        if keys is None:
            keys = [ '*' ]
        elif not isinstance(keys, list):
            keys = [ keys ]

        if haId not in self._subscribers:
            self._subscribers[haId] = {}
        subscribers = self._subscribers[haId]

        for key in keys:
            if '*' in key:
                callback_record = {
                    "key": key,
                    "regex": re.compile(fnmatch.translate(key), re.IGNORECASE),
                    "callback": callback
                }
                if self.WILDCARD_KEY not in subscribers:
                    subscribers[self.WILDCARD_KEY] = []
                if not self.wildcard_registered(callback_record, subscribers[self.WILDCARD_KEY]):
                    subscribers[self.WILDCARD_KEY].append(callback_record)
            else:
                if key not in subscribers:
                    subscribers[key] = set()
                subscribers[key].add(callback)

    def deregister_subscriber(self,
        haId:str,
        callback:Callable[[ApplianceEvent], None] | Callable[[], None],
        keys:str|Sequence[str] = None
    ):
        """ Clear a subscriber that was previously registered so it stops getting events """
        if keys is None:
            keys = [ '*' ]
        elif not isinstance(keys, list):
            keys = [ keys ]

        subscribers = self._subscribers.get(haId)
        if not subscribers:
            return

        for key in keys:
            if '*' in key:
                if self.WILDCARD_KEY in subscribers:
                    new_list = [ item for item in subscribers[self.WILDCARD_KEY] if item['key'] != key or item['callback'] != callback]
                    subscribers[self.WILDCARD_KEY] = new_list
            elif key in subscribers:
                subscribers[key].discard(callback)

    def register_callback(self, callback:Callable, keys:Events|Sequence[Events]):
        """ Register an application callback for stream level notifications

        Callbacks for CONNECTED, DISCONNECTED, PAIRED, DEPAIRED and UNHANDLED receive (haId, key, event)
        and RESYNC_NEEDED callbacks receive no parameters. Trailing parameters are optional.
        """
        if not isinstance(keys, list):
            keys = [ keys ]
        for key in keys:
            if key not in self._callbacks:
                self._callbacks[key] = set()
            self._callbacks[key].add(callback)

    def deregister_callback(self, callback:Callable, keys:Events|Sequence[Events]):
        """ Clear an application callback """
        if not isinstance(keys, list):
            keys = [ keys ]
        for key in keys:
            if key in self._callbacks:
                self._callbacks[key].discard(callback)

    def wildcard_registered(self,  callback_record, callback_list) -> bool:
        """ Checks if the key and callback pair are already in the list of callbacks """
        for item in callback_list:
            if item['key'] == callback_record['key'] and item['callback'] == callback_record['callback']:
                return True
        return False

    def has_subscriber(self, haId:str) -> bool:
        """ Check if anything is subscribed to the appliance """
        subscribers = self._subscribers.get(haId)
        return bool(subscribers) and any(subscribers.values())

    def clear_all_callbacks(self):
        """ Clear all the registered subscribers and callbacks """
        self._subscribers = {}
        self._callbacks = {}

    def clear_appliance_subscribers(self, haId:str):
        """ Clear all the subscribers of an appliance """
        if haId in self._subscribers:
            del self._subscribers[haId]


    async def async_dispatch(self, haId:str, event:ApplianceEvent) -> bool:
        """ Deliver an event to the subscribers of the appliance

        Returns False when nothing is subscribed to the appliance
        """
        if not self.has_subscriber(haId):
            return False

        subscribers = self._subscribers[haId]
        handled = False
        for callback in list(subscribers.get(event.key, ())):
            await self._async_call(callback, event)
            handled = True

        for callback_record in list(subscribers.get(self.WILDCARD_KEY, ())):
            if event.key and callback_record["regex"].fullmatch(event.key):
                await self._async_call(callback_record['callback'], event)
                handled = True

        # dispatch default callbacks for unhandled events
        if not handled:
            _LOGGER.debug("No subscriber of %s handles %s", haId, event.key)
            for callback in list(self._callbacks.get(Events.UNHANDLED, ())):
                await self._async_call(callback, haId, Events.UNHANDLED, event)
        return True

    async def async_notify_connectivity(self, haId:str, state:Events) -> None:
        """ Notify the application that an appliance connected, disconnected, paired or depaired """
        _LOGGER.debug("Broadcasting connectivity event: %s = %s", haId, state)
        for callback in list(self._callbacks.get(state, ())):
            await self._async_call(callback, haId, state)

    async def async_notify_resync_needed(self) -> None:
        """ Notify the application that events may have been missed and the state should be reloaded """
        _LOGGER.debug("Broadcasting event: %s", Events.RESYNC_NEEDED)
        for callback in list(self._callbacks.get(Events.RESYNC_NEEDED, ())):
            await self._async_call(callback)


    async def _async_call(self, callback:Callable, *args) -> None:
        """ Helper funtion to make the right kind of call to the callback funtion """
        try:
            sig = inspect.signature(callback)
            params = sig.parameters.values()
            if not any(p.kind == inspect.Parameter.VAR_POSITIONAL for p in params):
                positional = [ p for p in params if p.kind in (inspect.Parameter.POSITIONAL_ONLY, inspect.Parameter.POSITIONAL_OR_KEYWORD) ]
                if len(positional) > len(args):
                    raise ValueError(f"Unexpected number of callback parameters: {sig}")
                args = args[:len(positional)]

            if inspect.iscoroutinefunction(callback):
                await callback(*args)
            else:
                callback(*args)
        except Exception as ex:
            _LOGGER.warning("Unhandled exception in callback function %s", getattr(callback, '__name__', callback), exc_info=ex)
