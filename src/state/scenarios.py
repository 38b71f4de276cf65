"""Built-in scenario definitions"""
from typing import Sequence

from src.models.scenario import InputKind, Scenario, Step, ValidationRule
from src.state.registry import ScenarioRegistry

ONBOARDING = "onboarding"
GROUP_SETUP = "group_setup"
EVENT_CREATION = "event_creation"
ADMIN_PANEL = "admin_panel"

NAME_PATTERN = r"^[A-Za-zА-Яа-я\s]+$"

ADMIN_SPOKES = (
    "user_management",
    "group_management",
    "event_management",
    "system_settings",
    "statistics",
)


def onboarding_scenario(languages: Sequence[str] = ("en", "ru")) -> Scenario:
    return Scenario(
        id=ONBOARDING,
        name="User Onboarding",
        description="Language, name and location for new users",
        initial_step="language_selection",
        max_duration=3600,
        interruptible=False,
        steps=[
            Step(
                id="language_selection",
                name="Language Selection",
                next_steps=frozenset({"name_input"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.CHOICE,
                    choices=tuple(languages),
                    error_message="Please select a valid language",
                    error_key="onboarding.invalid_language",
                ),
            ),
            Step(
                id="name_input",
                name="Name Input",
                next_steps=frozenset({"location_input"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.TEXT,
                    min_length=2,
                    max_length=50,
                    pattern=NAME_PATTERN,
                    error_message="Name should be 2-50 characters, letters and spaces only",
                    error_key="onboarding.invalid_name",
                ),
            ),
            Step(
                id="location_input",
                name="Location Input",
                next_steps=frozenset({"welcome"}),
                requires_input=True,
                skippable=True,
                validation=ValidationRule(
                    kind=InputKind.LOCATION,
                    min_length=2,
                    max_length=100,
                    error_message="Please provide a valid location",
                    error_key="onboarding.invalid_location",
                ),
            ),
            Step(id="welcome", name="Welcome"),
        ],
    )


def group_setup_scenario() -> Scenario:
    return Scenario(
        id=GROUP_SETUP,
        name="Group Setup",
        description="Permission check and configuration after the bot joins a group",
        initial_step="permission_check",
        max_duration=1800,
        interruptible=True,
        steps=[
            Step(
                id="permission_check",
                name="Permission Check",
                next_steps=frozenset({"configuration", "permission_request"}),
            ),
            Step(
                id="permission_request",
                name="Permission Request",
                next_steps=frozenset({"permission_check"}),
            ),
            Step(
                id="configuration",
                name="Configuration",
                next_steps=frozenset({"complete"}),
                requires_input=True,
                skippable=True,
            ),
            Step(id="complete", name="Setup Complete"),
        ],
    )


def event_creation_scenario() -> Scenario:
    return Scenario(
        id=EVENT_CREATION,
        name="Event Creation",
        description="Collect the details of a new event",
        initial_step="title_input",
        max_duration=1800,
        interruptible=True,
        steps=[
            Step(
                id="title_input",
                name="Event Title",
                next_steps=frozenset({"description_input"}),
                requires_input=True,
                validation=ValidationRule(
                    min_length=3,
                    max_length=100,
                    error_message="Event title should be 3-100 characters",
                    error_key="events.invalid_title",
                ),
            ),
            Step(
                id="description_input",
                name="Event Description",
                next_steps=frozenset({"date_input"}),
                requires_input=True,
                skippable=True,
                validation=ValidationRule(
                    min_length=10,
                    max_length=500,
                    error_message="Event description should be 10-500 characters",
                    error_key="events.invalid_description",
                ),
            ),
            Step(
                id="date_input",
                name="Event Date",
                next_steps=frozenset({"time_input"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.DATE,
                    error_message="Please provide a valid date (YYYY-MM-DD)",
                    error_key="events.invalid_date",
                ),
            ),
            Step(
                id="time_input",
                name="Event Time",
                next_steps=frozenset({"location_input"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.TIME,
                    error_message="Please provide a valid time (HH:MM)",
                    error_key="events.invalid_time",
                ),
            ),
            Step(
                id="location_input",
                name="Event Location",
                next_steps=frozenset({"confirmation"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.LOCATION,
                    min_length=3,
                    max_length=200,
                    error_message="Event location should be 3-200 characters",
                    error_key="events.invalid_location",
                ),
            ),
            Step(
                id="confirmation",
                name="Confirmation",
                next_steps=frozenset({"create", "cancel"}),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.CHOICE,
                    choices=("confirm", "cancel"),
                    error_message="Please confirm or cancel",
                    error_key="events.invalid_confirmation",
                ),
            ),
            Step(id="create", name="Create Event"),
            Step(id="cancel", name="Cancel"),
        ],
    )


def admin_panel_scenario() -> Scenario:
    spokes = [
        Step(
            id="user_management",
            name="User Management",
            next_steps=frozenset({"main_menu"}),
            requires_input=True,
            validation=ValidationRule(
                min_length=1,
                max_length=64,
                error_key="admin.invalid_search",
            ),
        ),
        Step(id="group_management", name="Group Management", next_steps=frozenset({"main_menu"})),
        Step(id="event_management", name="Event Management", next_steps=frozenset({"main_menu"})),
        Step(id="system_settings", name="System Settings", next_steps=frozenset({"main_menu"})),
        Step(id="statistics", name="Statistics", next_steps=frozenset({"main_menu"})),
    ]
    return Scenario(
        id=ADMIN_PANEL,
        name="Admin Panel",
        description="Administrative operations",
        initial_step="main_menu",
        max_duration=3600,
        interruptible=True,
        steps=[
            Step(
                id="main_menu",
                name="Admin Main Menu",
                next_steps=frozenset(ADMIN_SPOKES),
                requires_input=True,
                validation=ValidationRule(
                    kind=InputKind.CHOICE,
                    choices=ADMIN_SPOKES,
                    error_message="Please select a valid option",
                    error_key="admin.invalid_option",
                ),
            ),
            *spokes,
        ],
    )


def build_default_registry(languages: Sequence[str] = ("en", "ru")) -> ScenarioRegistry:
    """Registry with the four built-in scenarios, frozen"""
    registry = ScenarioRegistry([
        onboarding_scenario(languages),
        group_setup_scenario(),
        event_creation_scenario(),
        admin_panel_scenario(),
    ])
    return registry.freeze()
