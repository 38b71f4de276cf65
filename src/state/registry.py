"""Catalog of scenarios and their transitions"""
import logging
from typing import Optional

from src.models.scenario import Scenario, Step

logger = logging.getLogger(__name__)


class ScenarioDefinitionError(ValueError):
    """A scenario definition is internally inconsistent"""


class ScenarioRegistry:
    """
    Registry of scenario definitions.

    Definitions are checked on registration; after ``freeze()`` the registry
    is read-only and safe to share between concurrent update tasks.
    """

    def __init__(self, scenarios: Optional[list[Scenario]] = None):
        self._scenarios: dict[str, Scenario] = {}
        self._frozen = False
        for scenario in scenarios or []:
            self.register(scenario)

    def register(self, scenario: Scenario) -> None:
        if self._frozen:
            raise ScenarioDefinitionError("Registry is frozen")
        if scenario.id in self._scenarios:
            raise ScenarioDefinitionError(f"Scenario '{scenario.id}' is already registered")

        self._check(scenario)
        self._scenarios[scenario.id] = scenario
        logger.debug(f"Registered scenario '{scenario.id}' with {len(scenario.steps)} steps")

    @staticmethod
    def _check(scenario: Scenario) -> None:
        if scenario.initial_step not in scenario.steps:
            raise ScenarioDefinitionError(
                f"{scenario.id}: initial step '{scenario.initial_step}' is not declared"
            )

        for step_id, step in scenario.steps.items():
            if step.id != step_id:
                raise ScenarioDefinitionError(f"{scenario.id}: step key '{step_id}' != id '{step.id}'")
            unknown = step.next_steps - scenario.steps.keys()
            if unknown:
                raise ScenarioDefinitionError(
                    f"{scenario.id}.{step_id}: unknown next steps {sorted(unknown)}"
                )

        unreachable = scenario.steps.keys() - scenario.reachable_steps()
        if unreachable:
            raise ScenarioDefinitionError(
                f"{scenario.id}: unreachable steps {sorted(unreachable)}"
            )

        if scenario.max_duration is not None and scenario.max_duration <= 0:
            raise ScenarioDefinitionError(f"{scenario.id}: max_duration must be positive")

    def freeze(self) -> "ScenarioRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, scenario_id: Optional[str]) -> Optional[Scenario]:
        if scenario_id is None:
            return None
        return self._scenarios.get(scenario_id)

    def list(self) -> list[Scenario]:
        return list(self._scenarios.values())

    def get_step(self, scenario_id: Optional[str], step_id: Optional[str]) -> Optional[Step]:
        scenario = self.get(scenario_id)
        if scenario is None or step_id is None:
            return None
        return scenario.get_step(step_id)

    def can_transition(self, scenario_id: str, from_step: str, to_step: str) -> bool:
        step = self.get_step(scenario_id, from_step)
        return step is not None and to_step in step.next_steps

    def can_interrupt(self, scenario_id: Optional[str]) -> bool:
        scenario = self.get(scenario_id)
        return scenario.interruptible if scenario else True

    def __contains__(self, scenario_id: str) -> bool:
        return scenario_id in self._scenarios

    def __len__(self) -> int:
        return len(self._scenarios)
