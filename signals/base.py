#  signals/base.py
from __future__ import annotations

import uuid
from datetime import datetime, timezone
from typing import Any, Dict

from pydantic import BaseModel, ConfigDict, Field, field_serializer, field_validator


class ReadinessSignal(BaseModel):
    """
    One emitted event on the readiness bus.

    Handlers receive the whole signal; ``payload`` carries whatever the emitter
    attached (often nothing for pure "X ready" announcements).
    """
    # ------------------------------------------------------------------ #
    # Pydantic configuration
    # ------------------------------------------------------------------ #
    model_config = ConfigDict(
        extra="allow",
        arbitrary_types_allowed=True,
    )

    # ------------------------------------------------------------------ #
    # Core attributes
    # ------------------------------------------------------------------ #
    signal_name: str = Field(
        ...,
        description="Name the signal was emitted under (e.g. 'registry.ready').",
    )
    payload: Dict[str, Any] = Field(
        default_factory=dict,
        description="Optional data attached by the emitter.",
    )
    signal_id: str = Field(
        default_factory=lambda: f"sig_{uuid.uuid4()}",
        description="Unique identifier for this emission.",
    )
    sequence: int = Field(
        default=0,
        ge=0,
        description="Position of this emission in the bus history.",
    )
    timestamp: datetime = Field(
        default_factory=lambda: datetime.now(timezone.utc),
        description="UTC timestamp when the signal was emitted.",
    )

    # ------------------------------------------------------------------ #
    # Validators & serializers
    # ------------------------------------------------------------------ #
    @field_validator("payload", mode="before")
    @classmethod
    def _wrap_payload(cls, v: Any) -> Dict[str, Any]:
        """Non-mapping payloads are stored under a single ``value`` key."""
        if v is None:
            return {}
        if isinstance(v, dict):
            return v
        return {"value": v}

    @field_validator("timestamp")
    @classmethod
    def _ensure_utc(cls, v: datetime) -> datetime:
        return v.replace(tzinfo=timezone.utc) if v.tzinfo is None else v.astimezone(timezone.utc)

    @field_serializer("timestamp")
    def _ts_iso(self, v: datetime, _info):
        return v.astimezone(timezone.utc).isoformat()

    def get(self, key: str, default: Any = None) -> Any:
        return self.payload.get(key, default)

    def __repr__(self) -> str:  # pragma: no cover
        return f"{self.__class__.__name__}(signal_name={self.signal_name!r}, sequence={self.sequence})"
