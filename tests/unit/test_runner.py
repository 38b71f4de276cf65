"""Unit tests for ScenarioRunner"""
import pytest

from src.exceptions import InvalidStateTransition
from src.state.registry import ScenarioDefinitionError
from src.state.scenarios import ADMIN_PANEL, EVENT_CREATION, ONBOARDING


class TestStart:
    @pytest.mark.asyncio
    async def test_start_persists_before_effects(self, runner, store):
        seen = []

        async def effect(ctx):
            stored = await store.load(ctx.user_id)
            seen.append(stored.current_state)

        ctx = await runner.start(1, ONBOARDING, effects=[effect])

        assert ctx.current_state == "onboarding:language_selection"
        assert seen == ["onboarding:language_selection"]

    @pytest.mark.asyncio
    async def test_start_with_initial_data(self, runner, store):
        await runner.start(1, EVENT_CREATION, data={"group_chat_id": -42})
        assert (await store.load(1)).get_int("group_chat_id") == -42

    @pytest.mark.asyncio
    async def test_non_interruptible_scenario_blocks_other_starts(self, runner, store):
        await runner.start(1, ONBOARDING)

        with pytest.raises(InvalidStateTransition) as exc_info:
            await runner.start(1, ADMIN_PANEL)

        assert exc_info.value.from_state == "onboarding:language_selection"
        assert (await store.load(1)).scenario == ONBOARDING

    @pytest.mark.asyncio
    async def test_same_scenario_can_restart(self, runner):
        await runner.start(1, ONBOARDING)
        await runner.advance(1, "name_input")

        ctx = await runner.start(1, ONBOARDING)
        assert ctx.step == "language_selection"

    @pytest.mark.asyncio
    async def test_interruptible_scenario_is_replaced(self, runner):
        await runner.start(1, EVENT_CREATION, data={"title": "Lindy Night"})

        ctx = await runner.start(1, ADMIN_PANEL)
        assert ctx.scenario == ADMIN_PANEL
        assert ctx.data == {}


class TestAdvance:
    @pytest.mark.asyncio
    async def test_advance_merges_data_then_moves(self, runner, store):
        await runner.start(1, ONBOARDING)
        await runner.advance(1, "name_input", data={"language": "ru"})

        stored = await store.load(1)
        assert stored.step == "name_input"
        assert stored.get_str("language") == "ru"

    @pytest.mark.asyncio
    async def test_undeclared_transition_leaves_context_untouched(self, runner, store):
        await runner.start(1, ONBOARDING)
        effect_calls = []

        async def effect(ctx):
            effect_calls.append(ctx)

        with pytest.raises(InvalidStateTransition):
            await runner.advance(1, "welcome", data={"name": "Anna"}, effects=[effect])

        stored = await store.load(1)
        assert stored.step == "language_selection"
        assert not stored.has_data("name")
        assert effect_calls == []

    @pytest.mark.asyncio
    async def test_advance_without_context(self, runner):
        with pytest.raises(InvalidStateTransition):
            await runner.advance(1, "name_input")

    @pytest.mark.asyncio
    async def test_failing_effect_keeps_transition(self, runner, store):
        await runner.start(1, ONBOARDING)

        async def broken(ctx):
            raise RuntimeError("telegram is down")

        with pytest.raises(RuntimeError):
            await runner.advance(1, "name_input", effects=[broken])
        assert (await store.load(1)).step == "name_input"

    @pytest.mark.asyncio
    async def test_update_data_keeps_step(self, runner, store):
        await runner.start(1, EVENT_CREATION)
        await runner.update_data(1, {"prompt_message_id": 77})

        stored = await store.load(1)
        assert stored.step == "title_input"
        assert stored.get_int("prompt_message_id") == 77
        assert await runner.update_data(2, {"x": 1}) is None


class TestCompletion:
    @pytest.mark.asyncio
    async def test_complete_hands_final_context_to_effects(self, runner, store):
        await runner.start(1, ONBOARDING)
        await runner.advance(1, "name_input", data={"language": "ru"})
        received = []

        async def effect(ctx):
            received.append(ctx)
            assert await store.load(1) is None

        final = await runner.complete(1, effects=[effect])

        assert final.get_str("language") == "ru"
        assert received == [final]
        assert await store.load(1) is None

    @pytest.mark.asyncio
    async def test_complete_without_context(self, runner):
        assert await runner.complete(1) is None

    @pytest.mark.asyncio
    async def test_cancel(self, runner, store):
        await runner.start(1, EVENT_CREATION)
        assert await runner.cancel(1)
        assert await store.load(1) is None
        assert not await runner.cancel(1)


class TestStepHandlers:
    def test_register_and_lookup(self, runner):
        async def on_name(update, ctx, value, services):
            pass

        runner.register_step_handler(ONBOARDING, "name_input", on_name)
        assert runner.step_handler(ONBOARDING, "name_input") is on_name
        assert runner.step_handler(ONBOARDING, "location_input") is None
        assert runner.step_handler(None, None) is None

    def test_unknown_step_rejected(self, runner):
        async def handler(update, ctx, value, services):
            pass

        with pytest.raises(ScenarioDefinitionError):
            runner.register_step_handler(ONBOARDING, "shoe_size", handler)
