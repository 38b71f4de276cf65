"""Anti-spam oracle response and verdict models"""
from datetime import datetime
from typing import Optional
from pydantic import BaseModel, Field

from src.models.context import utcnow


class OracleResult(BaseModel):
    offenses: int = 0
    messages: list[str] = Field(default_factory=list)
    time_added: Optional[str] = None


class OracleResponse(BaseModel):
    """Body of ``GET {api_url}/check?user_id=...``"""

    ok: bool
    result: Optional[OracleResult] = None
    description: Optional[str] = None


class AntiSpamVerdict(BaseModel):
    user_id: int
    is_banned: bool = False
    offenses: int = 0
    reasons: list[str] = Field(default_factory=list)
    source_time: Optional[datetime] = None
    checked_at: datetime = Field(default_factory=utcnow)

    @classmethod
    def from_oracle(cls, user_id: int, response: OracleResponse) -> "AntiSpamVerdict":
        if response.result is None:
            return cls(user_id=user_id)

        source_time = None
        if response.result.time_added:
            try:
                source_time = datetime.fromisoformat(response.result.time_added.replace("Z", "+00:00"))
            except ValueError:
                source_time = None

        return cls(
            user_id=user_id,
            is_banned=response.result.offenses > 0,
            offenses=response.result.offenses,
            reasons=response.result.messages,
            source_time=source_time,
        )

    @property
    def ban_reason(self) -> str:
        if not self.reasons:
            return f"CAS offenses: {self.offenses}"
        return "; ".join(self.reasons)
