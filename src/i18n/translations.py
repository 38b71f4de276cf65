"""
Bot translations for multi-language support.

Uses a simple dictionary of dotted keys per language. Strings are
formatted with str.format, so parameters look like {name}.
"""
import logging
from typing import Any, Dict, Iterable, Optional

logger = logging.getLogger(__name__)

DOCUMENTATION_URL = "https://github.com/swingbuddy/swingbuddy/wiki/Bot-Setup"

# Translation dictionaries: language_code -> {key: translated_string}
TRANSLATIONS: Dict[str, Dict[str, str]] = {
    "en": {
        # Errors
        "errors.generic": "⚠️ An error occurred. Please try again.",
        "errors.try_again": "⚠️ Something went wrong. Please try again in a moment.",
        "errors.invalid_input": "❌ Invalid input. Please try again.",
        "errors.not_found": "🔍 Not found.",
        "errors.access_denied": "⛔ You don't have permission to do that.",
        "errors.rate_limited": "🐢 Slow down! Please wait {retry_after} seconds.",
        "errors.invalid_command": "This command is only available in private chats.",
        "errors.unknown_command": "🤔 Unknown command. Use /help to see what I can do.",

        # Generic hints
        "messages.use_commands": "Use /help to see the available commands.",
        "messages.use_buttons": "👆 Please use the buttons above.",

        # Buttons
        "buttons.language.english": "🇬🇧 English",
        "buttons.language.russian": "🇷🇺 Русский",
        "buttons.location.moscow": "📍 Moscow",
        "buttons.location.saint_petersburg": "📍 Saint Petersburg",
        "buttons.location.skip": "⏭️ Skip",
        "buttons.navigation.back": "◀️ Back",
        "buttons.events.register": "✅ Register",
        "buttons.events.unregister": "❌ Unregister",
        "buttons.group.check_again": "🔄 Check again",
        "buttons.group.language": "🌐 Language",
        "buttons.group.documentation": "📖 Documentation",
        "buttons.group.got_it": "👍 Got it",
        "buttons.admin.ban": "🚫 Ban",
        "buttons.admin.unban": "✅ Unban",
        "buttons.admin.delete_event": "🗑️ Delete",

        # Onboarding
        "onboarding.new_user_greeting": "👋 Welcome to SwingBuddy, your swing dance community assistant!",
        "onboarding.choose_language": "Please choose your language:",
        "onboarding.returning_user": "👋 Welcome back, {name}! Use /events to see what's on.",
        "onboarding.language_selected": "✅ Language set to English.",
        "onboarding.ask_name": "What should we call you?",
        "onboarding.name_suggestion": "💡 Suggestion: {name}",
        "onboarding.ask_location": "📍 Where are you based? Pick a city or type your own.",
        "onboarding.setup_complete": "🎉 All set! Use /events to find your next dance.",
        "onboarding.invalid_language": "Please select a valid language",
        "onboarding.invalid_name": "Name should be 2-50 characters, letters and spaces only",
        "onboarding.invalid_location": "Please provide a valid location",
        "onboarding.language_changed": "✅ Your language preference has been updated.",

        # Commands
        "help.text": (
            "🤖 SwingBuddy Help\n\n"
            "/start - Start the bot\n"
            "/help - Show this help message\n"
            "/events - List upcoming events\n"
            "/register - Register for an event\n"
            "/language - Change language\n"
            "/profile - Show your profile\n\n"
            "For more information, contact the administrators."
        ),
        "profile.text": (
            "👤 Your Profile\n\n"
            "• Telegram ID: {telegram_id}\n"
            "• Username: {username}\n"
            "• Name: {name}\n"
            "• Location: {location}\n"
            "• Language: {language}\n\n"
            "Use /language to change your language preference."
        ),
        "profile.not_set": "Not set",
        "profile.not_registered": "You are not registered yet. Send /start to begin.",
        "language.choose": "🌐 Language Selection\n\nPlease choose your preferred language:",

        # Events
        "events.list_title": "📅 Choose a calendar:",
        "events.swing_events.title": "📅 Swing Dance Events",
        "events.swing_events.description": "Regular swing dance events and dance parties. Perfect for social dancing and meeting other dancers in the community.",
        "events.workshops.title": "🎭 Workshops & Classes",
        "events.workshops.description": "Educational workshops, dance classes and skill-building sessions with experienced instructors.",
        "events.social.title": "🎉 Social Events",
        "events.social.description": "Community gatherings, meetups and special celebrations.",
        "events.upcoming.title": "🗓️ Upcoming Events",
        "events.no_events": "No upcoming events yet. Check back soon!",
        "events.event_details": (
            "🎵 {title}\n\n"
            "📅 {date}\n"
            "📍 {location}\n"
            "👥 {current}/{max}\n\n"
            "{description}"
        ),
        "events.tbd": "TBD",
        "events.no_description": "No description available.",
        "events.register_success": "✅ You're registered for {event_name}!",
        "events.unregister_success": "👋 You've been unregistered from {event_name}.",
        "events.already_registered": "You're already registered for {event_name}.",
        "events.not_registered": "You weren't registered for {event_name}.",
        "events.event_full": "😔 {event_name} is full.",
        "events.register_prompt": "📝 Pick an event to register for:",
        "events.create_title": "✨ Let's create a new event!\n\nWhat's the event title?",
        "events.continue_in_private": "✉️ I've sent you a private message to set up the event.",
        "events.ask_description": "📝 Describe the event (or send \"-\" to skip).",
        "events.ask_date": "📅 On what date? (YYYY-MM-DD)",
        "events.ask_time": "🕐 At what time? (HH:MM)",
        "events.ask_location": "📍 Where will it take place?",
        "events.confirm_summary": (
            "Please check the details:\n\n"
            "🎵 {title}\n"
            "📅 {date} {time}\n"
            "📍 {location}\n\n"
            "{description}\n\n"
            "Type \"confirm\" to create the event or \"cancel\" to discard it."
        ),
        "events.created": "🎉 Event \"{title}\" has been created!",
        "events.creation_cancelled": "Event creation cancelled.",
        "events.invalid_title": "Event title should be 3-100 characters",
        "events.invalid_description": "Event description should be 10-500 characters",
        "events.invalid_date": "Please provide a valid date (YYYY-MM-DD)",
        "events.invalid_time": "Please provide a valid time (HH:MM)",
        "events.invalid_location": "Event location should be 3-200 characters",
        "events.invalid_confirmation": "Please type \"confirm\" or \"cancel\"",

        # Admin
        "admin.panel_title": "🛠️ Admin Panel",
        "admin.user_management": "👥 User Management",
        "admin.group_management": "🏘️ Group Management",
        "admin.event_management": "🎭 Event Management",
        "admin.system_settings": "⚙️ System Settings",
        "admin.statistics": "📊 Statistics",
        "admin.users_text": (
            "👥 User Management\n\n"
            "• Total users: {total_users}\n"
            "• Banned users: {banned_users}\n\n"
            "Send a username to search."
        ),
        "admin.search_results": "🔍 Users matching \"{query}\":",
        "admin.no_results": "No users match \"{query}\".",
        "admin.groups_text": "🏘️ Active groups ({count}):\n\n{groups}",
        "admin.events_text": "🎭 Upcoming events ({count}):",
        "admin.stats_text": (
            "📊 Statistics\n\n"
            "👥 Users: {total_users} (banned: {banned_users})\n"
            "🏘️ Groups: {total_groups} (active: {active_groups})\n"
            "🎭 Events: {total_events} (upcoming: {upcoming_events})\n"
            "🛡️ CAS checks today: {cas_checks_today}, bans total: {cas_bans_total}"
        ),
        "admin.settings_text": (
            "⚙️ System Settings\n\n"
            "• CAS protection: {cas_protection}\n"
            "• CAS auto-ban: {auto_ban}\n"
            "• Google Calendar: {google_calendar}\n"
            "• Rate limit: {max_requests} per {window_seconds}s"
        ),
        "admin.user_banned": "🚫 User {telegram_id} has been banned.",
        "admin.user_unbanned": "✅ User {telegram_id} has been unbanned.",
        "admin.event_deleted": "🗑️ Event #{event_id} deleted.",
        "admin.invalid_option": "Please select a valid option",
        "admin.invalid_search": "Search query should be 1-64 characters",

        # Group setup
        "group.setup.success": "🎉 SwingBuddy is ready in this group! I'll keep spammers out and share community events.",
        "group.setup.permission_request": (
            "👋 Thanks for adding SwingBuddy!\n\n"
            "To protect the group from spammers I need administrator rights "
            "(delete messages and ban users). Please promote me and press \"Check again\"."
        ),
        "group.setup.choose_language": "🌐 Choose the group language:",
        "group.setup.language_set": "✅ Group language set to {language}.",
        "group.setup.documentation": "📖 Setup guide: {url}",
    },
    "ru": {
        "errors.generic": "⚠️ Произошла ошибка. Попробуйте ещё раз.",
        "errors.try_again": "⚠️ Что-то пошло не так. Пожалуйста, попробуйте чуть позже.",
        "errors.invalid_input": "❌ Неверный ввод. Попробуйте ещё раз.",
        "errors.not_found": "🔍 Не найдено.",
        "errors.access_denied": "⛔ У вас нет прав для этого действия.",
        "errors.rate_limited": "🐢 Не так быстро! Подождите {retry_after} сек.",
        "errors.invalid_command": "Эта команда доступна только в личных сообщениях.",
        "errors.unknown_command": "🤔 Неизвестная команда. Используйте /help.",

        "messages.use_commands": "Используйте /help, чтобы увидеть доступные команды.",
        "messages.use_buttons": "👆 Пожалуйста, воспользуйтесь кнопками выше.",

        "buttons.language.english": "🇬🇧 English",
        "buttons.language.russian": "🇷🇺 Русский",
        "buttons.location.moscow": "📍 Москва",
        "buttons.location.saint_petersburg": "📍 Санкт-Петербург",
        "buttons.location.skip": "⏭️ Пропустить",
        "buttons.navigation.back": "◀️ Назад",
        "buttons.events.register": "✅ Записаться",
        "buttons.events.unregister": "❌ Отменить запись",
        "buttons.group.check_again": "🔄 Проверить снова",
        "buttons.group.language": "🌐 Язык",
        "buttons.group.documentation": "📖 Документация",
        "buttons.group.got_it": "👍 Понятно",
        "buttons.admin.ban": "🚫 Забанить",
        "buttons.admin.unban": "✅ Разбанить",
        "buttons.admin.delete_event": "🗑️ Удалить",

        "onboarding.new_user_greeting": "👋 Добро пожаловать в SwingBuddy, помощника свинг-сообщества!",
        "onboarding.choose_language": "Пожалуйста, выберите язык:",
        "onboarding.returning_user": "👋 С возвращением, {name}! Используйте /events, чтобы узнать о событиях.",
        "onboarding.language_selected": "✅ Выбран русский язык.",
        "onboarding.ask_name": "Как к вам обращаться?",
        "onboarding.name_suggestion": "💡 Вариант: {name}",
        "onboarding.ask_location": "📍 Где вы находитесь? Выберите город или напишите свой.",
        "onboarding.setup_complete": "🎉 Готово! Используйте /events, чтобы найти ближайшие танцы.",
        "onboarding.invalid_language": "Пожалуйста, выберите язык из списка",
        "onboarding.invalid_name": "Имя должно содержать 2-50 символов: только буквы и пробелы",
        "onboarding.invalid_location": "Пожалуйста, укажите корректное местоположение",
        "onboarding.language_changed": "✅ Язык обновлён.",

        "help.text": (
            "🤖 Помощь SwingBuddy\n\n"
            "/start - Начать работу\n"
            "/help - Показать эту справку\n"
            "/events - Ближайшие события\n"
            "/register - Записаться на событие\n"
            "/language - Сменить язык\n"
            "/profile - Ваш профиль\n\n"
            "По остальным вопросам обращайтесь к администраторам."
        ),
        "profile.text": (
            "👤 Ваш профиль\n\n"
            "• Telegram ID: {telegram_id}\n"
            "• Имя пользователя: {username}\n"
            "• Имя: {name}\n"
            "• Город: {location}\n"
            "• Язык: {language}\n\n"
            "Используйте /language, чтобы сменить язык."
        ),
        "profile.not_set": "Не указано",
        "profile.not_registered": "Вы ещё не зарегистрированы. Отправьте /start.",
        "language.choose": "🌐 Выбор языка\n\nПожалуйста, выберите язык:",

        "events.list_title": "📅 Выберите календарь:",
        "events.swing_events.title": "📅 Свинг-вечеринки",
        "events.swing_events.description": "Регулярные свинг-вечеринки и танцевальные события для социальных танцев и знакомства с сообществом.",
        "events.workshops.title": "🎭 Мастер-классы и занятия",
        "events.workshops.description": "Мастер-классы, уроки и интенсивы с опытными преподавателями.",
        "events.social.title": "🎉 Встречи сообщества",
        "events.social.description": "Встречи, праздники и другие события сообщества.",
        "events.upcoming.title": "🗓️ Ближайшие события",
        "events.no_events": "Пока нет запланированных событий. Загляните позже!",
        "events.event_details": (
            "🎵 {title}\n\n"
            "📅 {date}\n"
            "📍 {location}\n"
            "👥 {current}/{max}\n\n"
            "{description}"
        ),
        "events.tbd": "Уточняется",
        "events.no_description": "Описание отсутствует.",
        "events.register_success": "✅ Вы записаны на {event_name}!",
        "events.unregister_success": "👋 Запись на {event_name} отменена.",
        "events.already_registered": "Вы уже записаны на {event_name}.",
        "events.not_registered": "Вы не были записаны на {event_name}.",
        "events.event_full": "😔 На {event_name} нет свободных мест.",
        "events.register_prompt": "📝 Выберите событие для записи:",
        "events.create_title": "✨ Создаём новое событие!\n\nКак оно называется?",
        "events.continue_in_private": "✉️ Я написал вам в личные сообщения, чтобы продолжить.",
        "events.ask_description": "📝 Опишите событие (или отправьте \"-\", чтобы пропустить).",
        "events.ask_date": "📅 Дата? (ГГГГ-ММ-ДД)",
        "events.ask_time": "🕐 Время? (ЧЧ:ММ)",
        "events.ask_location": "📍 Где оно пройдёт?",
        "events.confirm_summary": (
            "Проверьте данные:\n\n"
            "🎵 {title}\n"
            "📅 {date} {time}\n"
            "📍 {location}\n\n"
            "{description}\n\n"
            "Напишите \"confirm\", чтобы создать событие, или \"cancel\", чтобы отменить."
        ),
        "events.created": "🎉 Событие \"{title}\" создано!",
        "events.creation_cancelled": "Создание события отменено.",
        "events.invalid_title": "Название должно содержать 3-100 символов",
        "events.invalid_description": "Описание должно содержать 10-500 символов",
        "events.invalid_date": "Укажите дату в формате ГГГГ-ММ-ДД",
        "events.invalid_time": "Укажите время в формате ЧЧ:ММ",
        "events.invalid_location": "Место должно содержать 3-200 символов",
        "events.invalid_confirmation": "Напишите \"confirm\" или \"cancel\"",

        "admin.panel_title": "🛠️ Панель администратора",
        "admin.user_management": "👥 Пользователи",
        "admin.group_management": "🏘️ Группы",
        "admin.event_management": "🎭 События",
        "admin.system_settings": "⚙️ Настройки",
        "admin.statistics": "📊 Статистика",
        "admin.users_text": (
            "👥 Пользователи\n\n"
            "• Всего: {total_users}\n"
            "• Забанено: {banned_users}\n\n"
            "Отправьте имя пользователя для поиска."
        ),
        "admin.search_results": "🔍 Пользователи по запросу \"{query}\":",
        "admin.no_results": "По запросу \"{query}\" никого не найдено.",
        "admin.groups_text": "🏘️ Активные группы ({count}):\n\n{groups}",
        "admin.events_text": "🎭 Ближайшие события ({count}):",
        "admin.stats_text": (
            "📊 Статистика\n\n"
            "👥 Пользователи: {total_users} (забанено: {banned_users})\n"
            "🏘️ Группы: {total_groups} (активных: {active_groups})\n"
            "🎭 События: {total_events} (предстоящих: {upcoming_events})\n"
            "🛡️ Проверок CAS сегодня: {cas_checks_today}, банов всего: {cas_bans_total}"
        ),
        "admin.settings_text": (
            "⚙️ Настройки\n\n"
            "• Защита CAS: {cas_protection}\n"
            "• Автобан CAS: {auto_ban}\n"
            "• Google Calendar: {google_calendar}\n"
            "• Лимит запросов: {max_requests} за {window_seconds} с"
        ),
        "admin.user_banned": "🚫 Пользователь {telegram_id} забанен.",
        "admin.user_unbanned": "✅ Пользователь {telegram_id} разбанен.",
        "admin.event_deleted": "🗑️ Событие #{event_id} удалено.",
        "admin.invalid_option": "Пожалуйста, выберите вариант из списка",
        "admin.invalid_search": "Запрос должен содержать 1-64 символа",

        "group.setup.success": "🎉 SwingBuddy готов к работе в этой группе! Я буду защищать её от спама и делиться событиями сообщества.",
        "group.setup.permission_request": (
            "👋 Спасибо, что добавили SwingBuddy!\n\n"
            "Чтобы защищать группу от спама, мне нужны права администратора "
            "(удаление сообщений и бан пользователей). Выдайте их и нажмите \"Проверить снова\"."
        ),
        "group.setup.choose_language": "🌐 Выберите язык группы:",
        "group.setup.language_set": "✅ Язык группы: {language}.",
        "group.setup.documentation": "📖 Инструкция по настройке: {url}",
    },
}

LANGUAGE_NAMES = {
    "en": "English",
    "ru": "Русский",
}


class Translator:
    """
    Looks up dotted keys for a language.

    Missing keys fall back to the default language, then to the key itself.

    Example:
        translator = Translator(default_language="en", supported_languages=["en", "ru"])
        translator.t("events.register_success", "ru", event_name="Lindy Night")
    """

    def __init__(
        self,
        default_language: str = "en",
        supported_languages: Optional[Iterable[str]] = None,
        translations: Optional[Dict[str, Dict[str, str]]] = None
    ):
        self.translations = translations or TRANSLATIONS
        self.default_language = default_language
        self.supported_languages = list(supported_languages or self.translations.keys())

    def is_supported(self, lang: Optional[str]) -> bool:
        return lang in self.supported_languages and lang in self.translations

    def resolve_language(self, lang: Optional[str]) -> str:
        """Supported language for ``lang`` (e.g. 'ru-RU' -> 'ru'), else the default"""
        if lang:
            base = lang.split("-")[0].lower()
            if self.is_supported(base):
                return base
        return self.default_language

    def user_language(self, user: Any) -> str:
        """
        Language for a stored user or a Telegram user object.

        Anything with a ``language_code`` attribute works; None gives the default.
        """
        return self.resolve_language(getattr(user, "language_code", None))

    def has(self, key: str, lang: Optional[str] = None) -> bool:
        return key in self.translations.get(lang or self.default_language, {})

    def t(self, key: str, lang: Optional[str] = None, **params: Any) -> str:
        lang = lang if lang in self.translations else self.default_language
        translated = self.translations[lang].get(key)

        if translated is None:
            translated = self.translations.get(self.default_language, {}).get(key)
        if translated is None:
            logger.warning(f"Missing translation for key '{key}'")
            return key

        if params:
            try:
                return translated.format(**params)
            except (KeyError, IndexError) as e:
                logger.error(f"Translation formatting error for key '{key}': {e}")
        return translated


def get_supported_languages() -> list[str]:
    """Return list of language codes with translations"""
    return list(TRANSLATIONS.keys())
