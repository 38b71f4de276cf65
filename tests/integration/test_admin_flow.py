"""Admin panel through the dispatcher"""
import pytest

from src.models.admin import SystemStats
from src.models.user import CreateUserRequest
from tests.helpers import ADMIN_ID, SECOND_ADMIN_ID, USER_ID, button, command, private, text

pytestmark = pytest.mark.integration


@pytest.fixture
def admin_chat():
    return private(ADMIN_ID)


@pytest.fixture(autouse=True)
def stats(admin_repo):
    admin_repo.system_stats.return_value = SystemStats(total_users=3, banned_users=1)


class TestPanel:
    @pytest.mark.asyncio
    async def test_admin_opens_panel(self, dispatcher, services, mock_gateway, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))

        ctx = await services.store.load(ADMIN_ID)
        assert ctx.current_state == "admin_panel:main_menu"

        call = mock_gateway.send_text.await_args
        assert call.args == (ADMIN_ID, services.translator.t("admin.panel_title", "en"))
        spokes = [data for row in call.kwargs["buttons"] for _, data in row]
        assert "admin:user_management" in spokes
        assert "admin:system_settings" in spokes

    @pytest.mark.asyncio
    async def test_regular_user_is_denied(self, dispatcher, services, mock_gateway):
        await dispatcher.dispatch(command("admin"))

        assert await services.store.load(USER_ID) is None
        mock_gateway.send_text.assert_awaited_once_with(USER_ID, services.translator.t("errors.access_denied", "en"))

    @pytest.mark.asyncio
    async def test_spoke_to_spoke_goes_through_menu(self, dispatcher, services, mock_gateway, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:user_management", **admin_chat))
        assert (await services.store.load(ADMIN_ID)).step == "user_management"

        await dispatcher.dispatch(button("admin:statistics", **admin_chat))

        assert (await services.store.load(ADMIN_ID)).step == "statistics"
        assert "3" in mock_gateway.edit_text.await_args.args[2]

    @pytest.mark.asyncio
    async def test_back_to_menu(self, dispatcher, services, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:group_management", **admin_chat))
        await dispatcher.dispatch(button("admin:main_menu", **admin_chat))

        assert (await services.store.load(ADMIN_ID)).step == "main_menu"

    @pytest.mark.asyncio
    async def test_expired_panel_is_restarted_by_button(self, dispatcher, services, admin_chat):
        await dispatcher.dispatch(button("admin:event_management", **admin_chat))
        assert (await services.store.load(ADMIN_ID)).current_state == "admin_panel:event_management"

    @pytest.mark.asyncio
    async def test_settings_need_super_admin(self, dispatcher, services, mock_gateway):
        chat = private(SECOND_ADMIN_ID)
        await dispatcher.dispatch(command("admin", **chat))

        await dispatcher.dispatch(button("admin:system_settings", **chat))

        assert (await services.store.load(SECOND_ADMIN_ID)).step == "main_menu"
        assert mock_gateway.send_text.await_args.args == (
            SECOND_ADMIN_ID, services.translator.t("errors.access_denied", "en")
        )

    @pytest.mark.asyncio
    async def test_super_admin_sees_settings(self, dispatcher, services, mock_gateway, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:system_settings", **admin_chat))

        assert (await services.store.load(ADMIN_ID)).step == "system_settings"
        mock_gateway.edit_text.assert_awaited_once()


class TestUserModeration:
    @pytest.mark.asyncio
    async def test_search_then_ban(self, dispatcher, services, user_repo, mock_gateway, admin_chat):
        await user_repo.create(CreateUserRequest(telegram_id=USER_ID, username="anna_swing", first_name="Anna"))
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:user_management", **admin_chat))

        await dispatcher.dispatch(text("anna", **admin_chat))

        ctx = await services.store.load(ADMIN_ID)
        assert ctx.get_str("last_search") == "anna"
        results = mock_gateway.send_text.await_args
        assert results.args[1] == services.translator.t("admin.search_results", "en", query="anna")
        assert results.kwargs["buttons"][0][0][1] == f"admin:ban:{USER_ID}"

        await dispatcher.dispatch(button(f"admin:ban:{USER_ID}", **admin_chat))

        assert user_repo.rows[USER_ID].is_banned
        assert mock_gateway.send_text.await_args.args[1] == services.translator.t(
            "admin.user_banned", "en", telegram_id=USER_ID
        )

    @pytest.mark.asyncio
    async def test_banned_user_offers_unban(self, dispatcher, user_repo, mock_gateway, admin_chat):
        await user_repo.create(CreateUserRequest(telegram_id=USER_ID, username="anna_swing"))
        await user_repo.set_ban(USER_ID, True)
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:user_management", **admin_chat))

        await dispatcher.dispatch(text("@anna", **admin_chat))

        assert mock_gateway.send_text.await_args.kwargs["buttons"][0][0][1] == f"admin:unban:{USER_ID}"

        await dispatcher.dispatch(button(f"admin:unban:{USER_ID}", **admin_chat))
        assert user_repo.rows[USER_ID].is_banned is False

    @pytest.mark.asyncio
    async def test_no_results(self, dispatcher, services, mock_gateway, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))
        await dispatcher.dispatch(button("admin:user_management", **admin_chat))

        await dispatcher.dispatch(text("nobody", **admin_chat))

        assert mock_gateway.send_text.await_args.args[1] == services.translator.t("admin.no_results", "en", query="nobody")

    @pytest.mark.asyncio
    async def test_text_in_menu_asks_for_buttons(self, dispatcher, services, mock_gateway, admin_chat):
        await dispatcher.dispatch(command("admin", **admin_chat))

        await dispatcher.dispatch(text("statistics", **admin_chat))

        assert mock_gateway.send_text.await_args.args[1] == services.translator.t("messages.use_buttons", "en")
        assert (await services.store.load(ADMIN_ID)).step == "main_menu"

    @pytest.mark.asyncio
    async def test_delete_missing_event(self, dispatcher, services, event_repo, mock_gateway, admin_chat):
        event_repo.delete.return_value = False

        await dispatcher.dispatch(button("admin:delete_event:42", **admin_chat))

        event_repo.delete.assert_awaited_once_with(42)
        assert mock_gateway.send_text.await_args.args[1] == services.translator.t("errors.not_found", "en")
