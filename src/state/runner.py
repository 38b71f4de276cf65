"""Applies scenario transitions: persist first, then side effects"""
import logging
from typing import Any, Awaitable, Callable, Iterable, Optional

from src.exceptions import InvalidStateTransition
from src.models.context import ConversationContext
from src.state.registry import ScenarioDefinitionError, ScenarioRegistry
from src.state.store import ContextStore

logger = logging.getLogger(__name__)

# Side effect run after the new context has been persisted
Effect = Callable[[ConversationContext], Awaitable[Any]]
# Handler for validated free text at a (scenario, step)
StepHandler = Callable[..., Awaitable[None]]


class ScenarioRunner:
    """
    The only writer of conversation contexts.

    Every transition is saved to the ContextStore before any effect runs, so
    a crash between the two never leaves the user facing a message for a step
    they are not at. Effects are not deduplicated; a failing effect does not
    roll the transition back.
    """

    def __init__(self, registry: ScenarioRegistry, store: ContextStore):
        self.registry = registry
        self.store = store
        self._step_handlers: dict[tuple[str, str], StepHandler] = {}

    # ------------------------------------------------------------------
    # Step handlers
    # ------------------------------------------------------------------

    def register_step_handler(self, scenario_id: str, step_id: str, handler: StepHandler) -> None:
        if self.registry.get_step(scenario_id, step_id) is None:
            raise ScenarioDefinitionError(f"No step {scenario_id}.{step_id} to attach a handler to")
        self._step_handlers[(scenario_id, step_id)] = handler

    def step_handler(self, scenario_id: Optional[str], step_id: Optional[str]) -> Optional[StepHandler]:
        if scenario_id is None or step_id is None:
            return None
        return self._step_handlers.get((scenario_id, step_id))

    # ------------------------------------------------------------------
    # Transitions
    # ------------------------------------------------------------------

    async def _run_effects(self, ctx: ConversationContext, effects: Iterable[Effect]) -> None:
        for effect in effects:
            await effect(ctx)

    async def start(
        self,
        user_id: int,
        scenario_id: str,
        data: Optional[dict[str, Any]] = None,
        effects: Iterable[Effect] = ()
    ) -> ConversationContext:
        """
        Enter ``scenario_id`` at its initial step.

        An active scenario is replaced when it is interruptible or is the same
        scenario being restarted.

        Raises:
            InvalidStateTransition: unknown scenario, or a non-interruptible
                scenario is in progress
        """
        existing = await self.store.load(user_id)
        if (
            existing is not None
            and not existing.is_idle
            and existing.scenario != scenario_id
            and not self.registry.can_interrupt(existing.scenario)
        ):
            raise InvalidStateTransition(
                message=f"Scenario {existing.scenario} cannot be interrupted",
                from_state=existing.current_state,
                to_state=scenario_id,
                user_id=user_id,
                operation="start_scenario",
            )

        ctx = ConversationContext(user_id=user_id)
        ctx.start(self.registry, scenario_id)
        if data:
            ctx.update_data(data)

        await self.store.save(ctx)
        logger.info(f"User {user_id} started scenario {scenario_id}")

        await self._run_effects(ctx, effects)
        return ctx

    async def advance(
        self,
        user_id: int,
        next_step: str,
        data: Optional[dict[str, Any]] = None,
        effects: Iterable[Effect] = ()
    ) -> ConversationContext:
        """
        Move the user's scenario to ``next_step``, merging ``data`` first.

        Raises:
            InvalidStateTransition: no stored context, or undeclared transition
        """
        ctx = await self.store.load(user_id)
        if ctx is None:
            raise InvalidStateTransition(
                message=f"No active context for user {user_id}",
                from_state="idle",
                to_state=next_step,
                user_id=user_id,
                operation="advance",
            )

        previous = ctx.current_state
        if data:
            ctx.update_data(data)
        ctx.advance(self.registry, next_step)

        await self.store.save(ctx)
        logger.debug(f"User {user_id}: {previous} -> {ctx.current_state}")

        await self._run_effects(ctx, effects)
        return ctx

    async def update_data(self, user_id: int, data: dict[str, Any]) -> Optional[ConversationContext]:
        """Merge ``data`` into the stored context without changing step"""
        ctx = await self.store.load(user_id)
        if ctx is None:
            return None
        ctx.update_data(data)
        await self.store.save(ctx)
        return ctx

    async def complete(
        self,
        user_id: int,
        effects: Iterable[Effect] = ()
    ) -> Optional[ConversationContext]:
        """
        Finish the user's scenario.

        The context is deleted first; effects then receive the final context
        (e.g. onboarding writes the collected profile to the user row).

        Returns:
            The final context, or None when there was nothing to complete
        """
        ctx = await self.store.load(user_id)
        if ctx is None:
            logger.warning(f"complete() for user {user_id} without an active context")
            return None

        final = ctx.model_copy(deep=True)
        await self.store.delete(user_id)
        logger.info(f"User {user_id} completed scenario {final.scenario} at step {final.step}")

        await self._run_effects(final, effects)
        return final

    async def cancel(self, user_id: int) -> bool:
        """Drop the user's context without running completion effects"""
        deleted = await self.store.delete(user_id)
        if deleted:
            logger.info(f"User {user_id} cancelled their scenario")
        return deleted
