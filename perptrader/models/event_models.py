"""Structured domain events handed to the notification sink.

The engine never renders user-facing text; formatting and transport belong
to whoever consumes these events.
"""
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict


class EventType(str, Enum):
    SIGNAL = "SIGNAL"
    POSITION_OPENED = "POSITION_OPENED"
    POSITION_CLOSED = "POSITION_CLOSED"
    SL_HIT = "SL_HIT"
    TP_HIT = "TP_HIT"


@dataclass(frozen=True)
class DomainEvent:
    type: EventType
    payload: Dict[str, Any]
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "type": self.type.value,
            "payload": self.payload,
            "timestamp": self.timestamp.isoformat(),
        }
