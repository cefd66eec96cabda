""" Turning framed SSE messages into appliance events """
from __future__ import annotations
import json
import logging

from .const import EVENT_TYPE_KEEP_ALIVE, CONNECTIVITY_EVENT_TYPES
from .event import ApplianceEvent
from .subscribers import SubscriberRegistry

_LOGGER = logging.getLogger(__name__)


class EventRouter():
    """ Parses a single SSE message and routes its items to the appliance subscribers """

    def __init__(self, registry:SubscriberRegistry) -> None:
        self._registry = registry

    @staticmethod
    def parse_message(message:str) -> tuple[str|None, str|None]:
        """ Extract the event type and the data payload from a message """
        event_type = None
        data_lines = []
        for line in message.split("\n"):
            if line.startswith("event:"):
                event_type = line[6:].strip() or None
            elif line.startswith("data:"):
                data_lines.append(line[5:].strip())
        payload = "\n".join(data_lines).strip() if data_lines else None
        return event_type, payload or None

    async def async_route(self, message:str) -> list[ApplianceEvent]:
        """ Route the items of a message, returns the events that reached a subscriber

        Malformed messages and unknown appliances are dropped, this never raises for bad input
        """
        event_type, payload = self.parse_message(message)
        if event_type == EVENT_TYPE_KEEP_ALIVE:
            _LOGGER.debug("Keep-alive received")
            return []
        if not payload:
            _LOGGER.debug("Ignoring message without data (event=%s)", event_type)
            return []

        try:
            data = json.loads(payload)
        except ValueError:
            _LOGGER.warning("Event payload is not valid JSON - ignoring: %.100s", payload)
            return []
        if not isinstance(data, dict):
            _LOGGER.warning("Event payload is not a JSON object - ignoring: %.100s", payload)
            return []

        haId = data.get('haId')
        if not haId:
            _LOGGER.warning("Event payload missing haId - ignoring")
            return []

        if event_type in CONNECTIVITY_EVENT_TYPES:
            _LOGGER.info("Appliance %s is now %s", haId, event_type)
            await self._registry.async_notify_connectivity(haId, CONNECTIVITY_EVENT_TYPES[event_type])
            return []

        items = data.get('items')
        if not isinstance(items, list):
            _LOGGER.debug("Event for %s has no items (event=%s)", haId, event_type)
            return []

        if not self._registry.has_subscriber(haId):
            _LOGGER.warning("No subscriber for appliance %s - dropping %d event item(s)", haId, len(items))
            return []

        routed = []
        for item in items:
            if not isinstance(item, dict) or 'key' not in item:
                _LOGGER.warning("Ignoring malformed event item for %s: %s", haId, item)
                continue
            event = ApplianceEvent.create(haId, item, event_type)
            _LOGGER.debug("Routing event to subscriber: %s = %s", event.key, event.value)
            if await self._registry.async_dispatch(haId, event):
                routed.append(event)
        return routed
