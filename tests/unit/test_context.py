"""Unit tests for ConversationContext"""
from datetime import timedelta

import pytest

from src.exceptions import ContextLimitError, InvalidStateTransition
from src.models.context import MAX_DATA_ENTRIES, MAX_VALUE_BYTES, ConversationContext
from src.state.scenarios import ADMIN_PANEL, EVENT_CREATION, ONBOARDING
from tests.helpers import utc

NOW = utc(2026, 3, 1, 12, 0)


class TestTransitions:
    """Entering, advancing and leaving scenarios"""

    def test_new_context_is_idle(self):
        ctx = ConversationContext(user_id=1)
        assert ctx.is_idle
        assert ctx.current_state == "idle"
        assert ctx.expires_at is None

    def test_start_enters_initial_step(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, ONBOARDING, now=NOW)

        assert ctx.scenario == ONBOARDING
        assert ctx.step == "language_selection"
        assert ctx.current_state == "onboarding:language_selection"
        # onboarding lasts at most one hour
        assert ctx.expires_at == NOW + timedelta(seconds=3600)

    def test_start_clears_previous_data(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, EVENT_CREATION, now=NOW)
        ctx.set_data("title", "Lindy Night")

        ctx.start(registry, ADMIN_PANEL, now=NOW)
        assert ctx.data == {}
        assert ctx.step == "main_menu"

    def test_start_unknown_scenario(self, registry):
        ctx = ConversationContext(user_id=1)
        with pytest.raises(InvalidStateTransition):
            ctx.start(registry, "salsa_night")
        assert ctx.is_idle

    def test_advance_follows_declared_transition(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, ONBOARDING, now=NOW)
        ctx.advance(registry, "name_input")
        assert ctx.step == "name_input"

    def test_advance_rejects_undeclared_transition(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, ONBOARDING, now=NOW)

        with pytest.raises(InvalidStateTransition) as exc_info:
            ctx.advance(registry, "welcome")

        assert exc_info.value.from_state == "onboarding:language_selection"
        assert ctx.step == "language_selection"

    def test_advance_when_idle(self, registry):
        ctx = ConversationContext(user_id=1)
        with pytest.raises(InvalidStateTransition):
            ctx.advance(registry, "name_input")

    def test_complete_resets_everything(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, ONBOARDING, now=NOW)
        ctx.set_data("language", "ru")

        ctx.complete()
        assert ctx.is_idle
        assert ctx.data == {}
        assert ctx.expires_at is None

    def test_scenario_and_step_must_be_set_together(self):
        with pytest.raises(ValueError):
            ConversationContext(user_id=1, scenario=ONBOARDING)

    def test_updated_at_never_moves_backwards(self, registry):
        ctx = ConversationContext(user_id=1, updated_at=NOW)
        ctx.set_data("a", 1, now=NOW - timedelta(hours=1))
        assert ctx.updated_at == NOW


class TestDataBag:
    """Typed access and size limits of the data map"""

    def test_typed_getters(self):
        ctx = ConversationContext(user_id=1)
        ctx.update_data({"name": "Anna", "group_chat_id": -100, "confirmed": True})

        assert ctx.get_str("name") == "Anna"
        assert ctx.get_int("group_chat_id") == -100
        assert ctx.get_bool("confirmed") is True
        # Wrong type reads as absent
        assert ctx.get_int("name") is None
        assert ctx.get_int("confirmed") is None
        assert ctx.get_str("missing") is None

    def test_value_of_exactly_10_kib_accepted(self):
        ctx = ConversationContext(user_id=1)
        # Two bytes go to the JSON quotes
        ctx.set_data("blob", "x" * (MAX_VALUE_BYTES - 2))
        assert len(ctx.get_str("blob")) == MAX_VALUE_BYTES - 2

    def test_value_one_byte_over_10_kib_rejected(self):
        ctx = ConversationContext(user_id=1)
        with pytest.raises(ContextLimitError) as exc_info:
            ctx.set_data("blob", "x" * (MAX_VALUE_BYTES - 1))
        assert exc_info.value.limit == "value_size"
        assert not ctx.has_data("blob")

    def test_fifty_first_entry_rejected(self):
        ctx = ConversationContext(user_id=1)
        for i in range(MAX_DATA_ENTRIES):
            ctx.set_data(f"k{i}", i)

        with pytest.raises(ContextLimitError) as exc_info:
            ctx.set_data("one_more", 1)
        assert exc_info.value.limit == "entries"

        # Overwriting an existing key is still allowed
        ctx.set_data("k0", "updated")
        assert ctx.get_data("k0") == "updated"

    def test_total_size_limit(self):
        ctx = ConversationContext(user_id=1)
        for i in range(10):
            ctx.set_data(f"k{i}", "x" * 10_000)

        with pytest.raises(ContextLimitError) as exc_info:
            ctx.set_data("k10", "x" * 10_000)
        assert exc_info.value.limit == "total_size"
        assert not ctx.has_data("k10")
        assert len(ctx.data) == 10

    def test_non_json_value_rejected(self):
        ctx = ConversationContext(user_id=1)
        with pytest.raises(ContextLimitError):
            ctx.set_data("when", object())

    def test_require_data_lists_missing_keys(self, registry):
        ctx = ConversationContext(user_id=1)
        ctx.start(registry, EVENT_CREATION, now=NOW)
        ctx.set_data("title", "Lindy Night")

        with pytest.raises(InvalidStateTransition) as exc_info:
            ctx.require_data(["title", "date", "time"])
        assert "date, time" in exc_info.value.message


class TestExpiry:
    """Expiry bounds and TTL arithmetic"""

    def test_expiry_more_than_seven_days_away_rejected(self):
        ctx = ConversationContext(user_id=1)
        with pytest.raises(ContextLimitError):
            ctx.set_expiry(NOW + timedelta(days=8), now=NOW)

    def test_is_expired(self):
        ctx = ConversationContext(user_id=1)
        ctx.set_expiry(NOW + timedelta(minutes=5), now=NOW)

        assert not ctx.is_expired(NOW)
        assert ctx.is_expired(NOW + timedelta(minutes=5))

    def test_extend_expiry_from_current_deadline(self):
        ctx = ConversationContext(user_id=1)
        ctx.set_expiry(NOW + timedelta(minutes=5), now=NOW)
        ctx.extend_expiry(600, now=NOW)
        assert ctx.expires_at == NOW + timedelta(minutes=15)

    def test_ttl_seconds(self):
        ctx = ConversationContext(user_id=1)
        assert ctx.ttl_seconds(NOW) is None
        ctx.set_expiry(NOW + timedelta(seconds=90), now=NOW)
        assert ctx.ttl_seconds(NOW) == 90

    def test_naive_datetimes_are_treated_as_utc(self):
        ctx = ConversationContext(user_id=1, expires_at=NOW.replace(tzinfo=None))
        assert ctx.expires_at == NOW


class TestSerialization:
    def test_json_round_trip_preserves_state(self, registry):
        ctx = ConversationContext(user_id=7)
        ctx.start(registry, EVENT_CREATION, now=NOW)
        ctx.update_data({"title": "Balboa Weekend", "group_chat_id": -42})

        restored = ConversationContext.from_json(ctx.to_json())
        assert restored == ctx
        assert restored.get_int("group_chat_id") == -42
