"""Group setup through the dispatcher: bot added, permission check, dismiss"""
import pytest

from tests.helpers import ADMIN_ID, GROUP_CHAT_ID, USER_ID, bot_status, button, group

pytestmark = pytest.mark.integration


class TestBotAdded:
    @pytest.mark.asyncio
    async def test_added_as_admin_goes_to_configuration(self, dispatcher, services, group_repo, mock_gateway):
        await dispatcher.dispatch(bot_status("member"))

        stored = group_repo.rows[GROUP_CHAT_ID]
        assert stored.title == "Lindy Hop Moscow"
        assert stored.is_active

        ctx = await services.store.load(ADMIN_ID)
        assert ctx.current_state == "group_setup:configuration"
        assert ctx.get_int("group_chat_id") == GROUP_CHAT_ID
        assert ctx.get_int("setup_message_id") == 100

        chat_id, text, buttons = mock_gateway.send_keyboard.await_args.args
        assert chat_id == GROUP_CHAT_ID
        assert text == services.translator.t("group.setup.success", "en")
        assert [row[0][1] for row in buttons] == ["group_setup:dismiss", "group_setup:language"]

    @pytest.mark.asyncio
    async def test_added_without_rights_asks_for_them(self, dispatcher, services, mock_gateway):
        mock_gateway.is_bot_admin_in.return_value = False

        await dispatcher.dispatch(bot_status("member"))

        ctx = await services.store.load(ADMIN_ID)
        assert ctx.step == "permission_request"
        text, buttons = mock_gateway.send_keyboard.await_args.args[1:]
        assert text == services.translator.t("group.setup.permission_request", "en")
        assert buttons[0][0][1].startswith("https://")
        assert buttons[1][0][1] == "group_setup:check_permissions"

    @pytest.mark.asyncio
    async def test_promotion_is_not_an_addition(self, dispatcher, services, group_repo):
        await dispatcher.dispatch(bot_status("administrator", old_status="member"))

        assert group_repo.rows == {}
        assert await services.store.load(ADMIN_ID) is None

    @pytest.mark.asyncio
    async def test_removal_deactivates_group(self, dispatcher, group_repo):
        await dispatcher.dispatch(bot_status("member"))
        await dispatcher.dispatch(bot_status("kicked", old_status="member"))

        assert group_repo.rows[GROUP_CHAT_ID].is_active is False


class TestPermissionRecheck:
    @pytest.mark.asyncio
    async def test_granting_rights_moves_to_configuration(self, dispatcher, services, mock_gateway):
        mock_gateway.is_bot_admin_in.return_value = False
        await dispatcher.dispatch(bot_status("member"))

        mock_gateway.is_bot_admin_in.return_value = True
        await dispatcher.dispatch(button("group_setup:check_permissions", **group(ADMIN_ID)))

        ctx = await services.store.load(ADMIN_ID)
        assert ctx.step == "configuration"
        assert ctx.get_int("setup_message_id") == 50
        chat_id, message_id, text = mock_gateway.edit_text.await_args.args
        assert (chat_id, message_id) == (GROUP_CHAT_ID, 50)
        assert text == services.translator.t("group.setup.success", "en")

    @pytest.mark.asyncio
    async def test_still_missing_rights_refreshes_screen(self, dispatcher, services, mock_gateway):
        mock_gateway.is_bot_admin_in.return_value = False
        await dispatcher.dispatch(bot_status("member"))

        await dispatcher.dispatch(button("group_setup:check_permissions", **group(ADMIN_ID)))

        assert (await services.store.load(ADMIN_ID)).step == "permission_request"
        mock_gateway.edit_text.assert_awaited_once()


class TestDismissAndLanguage:
    @pytest.mark.asyncio
    async def test_dismiss_by_adder_finishes_setup(self, dispatcher, services, mock_gateway):
        await dispatcher.dispatch(bot_status("member"))

        await dispatcher.dispatch(button("group_setup:dismiss", message_id=100, **group(ADMIN_ID)))

        assert await services.store.load(ADMIN_ID) is None
        mock_gateway.delete_message.assert_awaited_once_with(GROUP_CHAT_ID, 100)

    @pytest.mark.asyncio
    async def test_dismiss_by_regular_member_is_denied(self, dispatcher, services, mock_gateway):
        await dispatcher.dispatch(bot_status("member"))
        mock_gateway.get_member_status.return_value = "member"

        await dispatcher.dispatch(button("group_setup:dismiss", **group(USER_ID)))

        mock_gateway.delete_message.assert_not_awaited()
        mock_gateway.send_text.assert_awaited_once_with(
            GROUP_CHAT_ID, services.translator.t("errors.access_denied", "en")
        )
        assert (await services.store.load(ADMIN_ID)).step == "configuration"

    @pytest.mark.asyncio
    async def test_group_admin_sets_language(self, dispatcher, services, group_repo, mock_gateway):
        await dispatcher.dispatch(bot_status("member"))
        mock_gateway.get_member_status.return_value = "administrator"

        await dispatcher.dispatch(button("group_setup:lang_ru", **group(USER_ID)))

        assert group_repo.rows[GROUP_CHAT_ID].language_code == "ru"
        assert mock_gateway.send_text.await_args.args[0] == GROUP_CHAT_ID

    @pytest.mark.asyncio
    async def test_errors_render_in_group_language(self, dispatcher, services, mock_gateway):
        await dispatcher.dispatch(bot_status("member"))
        await dispatcher.dispatch(button("group_setup:lang_ru", **group(ADMIN_ID)))
        mock_gateway.get_member_status.return_value = "member"

        await dispatcher.dispatch(button("group_setup:dismiss", **group(USER_ID)))

        assert mock_gateway.send_text.await_args.args[1] == services.translator.t("errors.access_denied", "ru")
