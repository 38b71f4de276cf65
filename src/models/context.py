"""Per-user conversation context"""
import json
import logging
from datetime import datetime, timedelta, timezone
from typing import Any, Optional, Iterable, TYPE_CHECKING

from pydantic import BaseModel, Field, field_validator, model_validator

from src.exceptions import ContextLimitError, InvalidStateTransition

if TYPE_CHECKING:
    from src.state.registry import ScenarioRegistry

logger = logging.getLogger(__name__)

MAX_DATA_ENTRIES = 50
MAX_VALUE_BYTES = 10 * 1024
MAX_CONTEXT_BYTES = 100 * 1024
MAX_EXPIRY = timedelta(days=7)
DEFAULT_EXPIRY = timedelta(hours=24)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def _serialized_size(value: Any) -> int:
    return len(json.dumps(value, ensure_ascii=False, separators=(",", ":")).encode("utf-8"))


class ConversationContext(BaseModel):
    """
    Where a user is in a scenario plus the inputs gathered so far.

    ``scenario`` and ``step`` are both set while a dialog is active and both
    ``None`` when the user is idle. Mutations go through the methods below so
    that size limits and ``updated_at`` stay consistent.
    """

    user_id: int
    scenario: Optional[str] = None
    step: Optional[str] = None
    data: dict[str, Any] = Field(default_factory=dict)
    expires_at: Optional[datetime] = None
    updated_at: datetime = Field(default_factory=utcnow)

    @field_validator("expires_at", "updated_at", mode="after")
    @classmethod
    def ensure_utc(cls, v: Optional[datetime]) -> Optional[datetime]:
        if v is not None and v.tzinfo is None:
            return v.replace(tzinfo=timezone.utc)
        return v

    @model_validator(mode="after")
    def scenario_and_step_together(self) -> "ConversationContext":
        if (self.scenario is None) != (self.step is None):
            raise ValueError("scenario and step must be both set or both empty")
        return self

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_idle(self) -> bool:
        return self.scenario is None

    @property
    def current_state(self) -> str:
        if self.scenario is None:
            return "idle"
        return f"{self.scenario}:{self.step}"

    def in_scenario(self, scenario_id: str) -> bool:
        return self.scenario == scenario_id

    def at(self, scenario_id: str, step_id: str) -> bool:
        return self.scenario == scenario_id and self.step == step_id

    def _touch(self, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        # updated_at never moves backwards
        self.updated_at = max(now, self.updated_at)

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    def start(
        self,
        registry: "ScenarioRegistry",
        scenario_id: str,
        now: Optional[datetime] = None
    ) -> None:
        """Enter a scenario at its initial step, dropping any previous data"""
        scenario = registry.get(scenario_id)
        if scenario is None:
            raise InvalidStateTransition(
                message=f"Unknown scenario: {scenario_id}",
                from_state=self.current_state,
                to_state=scenario_id,
                user_id=self.user_id,
                operation="start_scenario",
            )

        now = now or utcnow()
        duration = (
            timedelta(seconds=scenario.max_duration)
            if scenario.max_duration
            else DEFAULT_EXPIRY
        )
        self.set_expiry(now + duration, now=now)
        self.scenario = scenario.id
        self.step = scenario.initial_step
        self.data = {}
        self._touch(now)

    def advance(
        self,
        registry: "ScenarioRegistry",
        next_step: str,
        now: Optional[datetime] = None
    ) -> None:
        """Move to ``next_step`` if the current step declares that transition"""
        if self.scenario is None or self.step is None:
            raise InvalidStateTransition(
                message=f"No active scenario, cannot move to {next_step}",
                from_state="idle",
                to_state=next_step,
                user_id=self.user_id,
                operation="advance",
            )

        if not registry.can_transition(self.scenario, self.step, next_step):
            raise InvalidStateTransition(
                from_state=self.current_state,
                to_state=f"{self.scenario}:{next_step}",
                user_id=self.user_id,
                operation="advance",
            )

        self.step = next_step
        self._touch(now)

    def complete(self, now: Optional[datetime] = None) -> None:
        """Finish the scenario and forget everything collected in it"""
        self.scenario = None
        self.step = None
        self.data = {}
        self.expires_at = None
        self._touch(now)

    def cancel(self, now: Optional[datetime] = None) -> None:
        self.complete(now)

    # ------------------------------------------------------------------
    # Data bag
    # ------------------------------------------------------------------

    def set_data(self, key: str, value: Any, now: Optional[datetime] = None) -> None:
        """
        Store a JSON value under ``key``.

        Raises:
            ContextLimitError: value is not JSON, is larger than 10 KiB, would be
                the 51st entry, or would push the context over 100 KiB
        """
        try:
            value_size = _serialized_size(value)
        except (TypeError, ValueError) as e:
            raise ContextLimitError(
                message=f"Value for '{key}' is not JSON serializable",
                limit="json",
                user_id=self.user_id,
                cause=e,
            )

        if value_size > MAX_VALUE_BYTES:
            raise ContextLimitError(
                message=f"Value for '{key}' is {value_size} bytes (max {MAX_VALUE_BYTES})",
                limit="value_size",
                user_id=self.user_id,
            )

        if key not in self.data and len(self.data) >= MAX_DATA_ENTRIES:
            raise ContextLimitError(
                message=f"Context already holds {MAX_DATA_ENTRIES} entries",
                limit="entries",
                user_id=self.user_id,
            )

        previous = self.data.get(key, _MISSING)
        self.data[key] = value
        total = self.serialized_size()
        if total > MAX_CONTEXT_BYTES:
            if previous is _MISSING:
                del self.data[key]
            else:
                self.data[key] = previous
            raise ContextLimitError(
                message=f"Context would be {total} bytes (max {MAX_CONTEXT_BYTES})",
                limit="total_size",
                user_id=self.user_id,
            )

        self._touch(now)

    def update_data(self, values: dict[str, Any], now: Optional[datetime] = None) -> None:
        for key, value in values.items():
            self.set_data(key, value, now=now)

    def get_data(self, key: str, default: Any = None) -> Any:
        return self.data.get(key, default)

    def get_str(self, key: str) -> Optional[str]:
        value = self.data.get(key)
        return value if isinstance(value, str) else None

    def get_int(self, key: str) -> Optional[int]:
        value = self.data.get(key)
        if isinstance(value, bool):
            return None
        return value if isinstance(value, int) else None

    def get_bool(self, key: str) -> Optional[bool]:
        value = self.data.get(key)
        return value if isinstance(value, bool) else None

    def remove_data(self, key: str, now: Optional[datetime] = None) -> Any:
        value = self.data.pop(key, None)
        self._touch(now)
        return value

    def has_data(self, key: str) -> bool:
        return key in self.data

    def data_keys(self) -> list[str]:
        return list(self.data.keys())

    def missing_data(self, keys: Iterable[str]) -> list[str]:
        """Keys from ``keys`` that have not been collected yet"""
        return [key for key in keys if key not in self.data]

    def require_data(self, keys: Iterable[str]) -> None:
        """
        Raises:
            InvalidStateTransition: if any of ``keys`` has not been collected
        """
        missing = self.missing_data(keys)
        if missing:
            raise InvalidStateTransition(
                message=f"Missing context data: {', '.join(missing)}",
                from_state=self.current_state,
                user_id=self.user_id,
            )

    # ------------------------------------------------------------------
    # Expiry
    # ------------------------------------------------------------------

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at <= (now or utcnow())

    def set_expiry(self, expires_at: datetime, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        if expires_at - now > MAX_EXPIRY:
            raise ContextLimitError(
                message=f"Expiry {expires_at.isoformat()} is more than 7 days away",
                limit="expiry",
                user_id=self.user_id,
            )
        self.expires_at = expires_at
        self._touch(now)

    def extend_expiry(self, seconds: int, now: Optional[datetime] = None) -> None:
        now = now or utcnow()
        base = self.expires_at if self.expires_at and self.expires_at > now else now
        self.set_expiry(base + timedelta(seconds=seconds), now=now)

    def clear_expiry(self, now: Optional[datetime] = None) -> None:
        self.expires_at = None
        self._touch(now)

    def ttl_seconds(self, now: Optional[datetime] = None) -> Optional[int]:
        """Whole seconds until expiry, None when the context never expires"""
        if self.expires_at is None:
            return None
        return int((self.expires_at - (now or utcnow())).total_seconds())

    # ------------------------------------------------------------------
    # Serialization
    # ------------------------------------------------------------------

    def serialized_size(self) -> int:
        return len(self.model_dump_json().encode("utf-8"))

    def to_json(self) -> str:
        return self.model_dump_json()

    @classmethod
    def from_json(cls, raw: str) -> "ConversationContext":
        return cls.model_validate_json(raw)

    def summary(self) -> dict[str, Any]:
        return {
            "user_id": self.user_id,
            "state": self.current_state,
            "data_keys": self.data_keys(),
            "expires_at": self.expires_at.isoformat() if self.expires_at else None,
            "updated_at": self.updated_at.isoformat(),
        }


_MISSING = object()
