"""Alert records raised by the competition monitor."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any
from uuid import uuid4

INFO = "INFO"
WARNING = "WARNING"
ERROR = "ERROR"
CRITICAL = "CRITICAL"

ALERT_LEVELS = (INFO, WARNING, ERROR, CRITICAL)


@dataclass
class Alert:
    """One alert; ``halt`` asks the trader to stop placing orders."""

    level: str
    category: str
    message: str
    rule: str = ""
    halt: bool = False
    data: dict[str, Any] = field(default_factory=dict)
    alert_id: str = field(default_factory=lambda: uuid4().hex[:12])
    timestamp: datetime = field(default_factory=lambda: datetime.now(timezone.utc))
    _acknowledged: bool = field(default=False, init=False, repr=False)

    def __post_init__(self) -> None:
        if self.level not in ALERT_LEVELS:
            raise ValueError(f"unknown alert level: {self.level}")

    @property
    def acknowledged(self) -> bool:
        return self._acknowledged

    def acknowledge(self) -> bool:
        """Mark the alert acknowledged; returns False if it already was."""
        if self.acknowledged:
            return False
        self._acknowledged = True
        return True

    def as_dict(self) -> dict[str, Any]:
        return {
            "alert_id": self.alert_id,
            "timestamp": self.timestamp.isoformat(),
            "level": self.level,
            "category": self.category,
            "rule": self.rule,
            "message": self.message,
            "halt": self.halt,
            "data": self.data,
            "acknowledged": self.acknowledged,
        }
