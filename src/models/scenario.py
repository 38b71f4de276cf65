"""Scenario, step and validation rule models"""
from enum import Enum
from typing import Optional

from pydantic import BaseModel, Field, field_validator


class InputKind(str, Enum):
    """Kind of input a step accepts"""

    TEXT = "text"
    NUMBER = "number"
    DATE = "date"
    TIME = "time"
    EMAIL = "email"
    PHONE = "phone"
    LOCATION = "location"
    CHOICE = "choice"


class ValidationRule(BaseModel):
    """Input contract of a step"""

    model_config = {"frozen": True}

    kind: InputKind = InputKind.TEXT
    # Only used by InputKind.CHOICE
    choices: tuple[str, ...] = ()
    min_length: Optional[int] = None
    max_length: Optional[int] = None
    pattern: Optional[str] = None
    error_message: Optional[str] = None
    # Translation key rendered to the user when validation fails
    error_key: Optional[str] = None


class Step(BaseModel):
    """A node of a scenario with its declared outgoing transitions"""

    model_config = {"frozen": True}

    id: str
    name: str = ""
    description: str = ""
    next_steps: frozenset[str] = Field(default_factory=frozenset)
    requires_input: bool = False
    skippable: bool = False
    validation: Optional[ValidationRule] = None

    @property
    def is_terminal(self) -> bool:
        return not self.next_steps


class Scenario(BaseModel):
    """A named dialog flow"""

    model_config = {"frozen": True}

    id: str
    name: str = ""
    description: str = ""
    initial_step: str
    steps: dict[str, Step]
    # Seconds; None means the context default applies
    max_duration: Optional[int] = None
    interruptible: bool = True

    @field_validator("steps", mode="before")
    @classmethod
    def index_steps(cls, v):
        """Accept a list of steps and index it by step id"""
        if isinstance(v, (list, tuple)):
            return {step.id if isinstance(step, Step) else step["id"]: step for step in v}
        return v

    def get_step(self, step_id: str) -> Optional[Step]:
        return self.steps.get(step_id)

    def reachable_steps(self) -> set[str]:
        """Step ids reachable from the initial step"""
        seen: set[str] = set()
        pending = [self.initial_step]
        while pending:
            step_id = pending.pop()
            if step_id in seen or step_id not in self.steps:
                continue
            seen.add(step_id)
            pending.extend(self.steps[step_id].next_steps)
        return seen
