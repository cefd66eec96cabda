"""Represents an appliance event received over the event stream."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from dataclasses_json import Undefined, dataclass_json


@dataclass_json(undefined=Undefined.EXCLUDE)
@dataclass(frozen=True)
class ApplianceEvent:
    """Class to represent a single item of a Home Connect event."""

    haId: str
    key: str
    value: Any | None = None
    displayvalue: str | None = None
    unit: str | None = None
    event_type: str | None = None

    @classmethod
    def create(cls, haId: str, item: dict, event_type: str | None = None):
        """A factory to create a new instance from an event item in the Home Connect format."""
        value = item.get("value")
        displayvalue = item.get("displayvalue")
        if not displayvalue and value is not None:
            displayvalue = str(value)
        return ApplianceEvent(
            haId=haId,
            key=item.get("key"),
            value=value,
            displayvalue=displayvalue,
            unit=item.get("unit"),
            event_type=event_type,
        )
