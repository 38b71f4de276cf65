"""Update handlers and the step handlers they register with the scenario runner"""
from src.handlers import admin, events, start
from src.state.scenarios import ADMIN_PANEL, EVENT_CREATION, ONBOARDING


def register_step_handlers(runner) -> None:
    """Attach free-text handlers to the scenario steps that take typed input"""
    runner.register_step_handler(ONBOARDING, "name_input", start.handle_name_input)
    runner.register_step_handler(ONBOARDING, "location_input", start.handle_location_input)

    runner.register_step_handler(EVENT_CREATION, "title_input", events.handle_title_input)
    runner.register_step_handler(EVENT_CREATION, "description_input", events.handle_description_input)
    runner.register_step_handler(EVENT_CREATION, "date_input", events.handle_date_input)
    runner.register_step_handler(EVENT_CREATION, "time_input", events.handle_time_input)
    runner.register_step_handler(EVENT_CREATION, "location_input", events.handle_location_input)
    runner.register_step_handler(EVENT_CREATION, "confirmation", events.handle_confirmation)

    runner.register_step_handler(ADMIN_PANEL, "user_management", admin.handle_user_search)
