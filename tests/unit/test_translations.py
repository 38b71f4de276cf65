"""Unit tests for the translation tables"""
import re

import pytest

from src.i18n.translations import TRANSLATIONS, Translator

PLACEHOLDER = re.compile(r"\{(\w+)\}")


@pytest.fixture
def translator():
    return Translator(default_language="en", supported_languages=["en", "ru"])


class TestTranslator:
    def test_lookup_and_format(self, translator):
        russian = translator.t("events.register_success", "ru", event_name="Lindy Night")
        english = translator.t("events.register_success", "en", event_name="Lindy Night")

        assert "Lindy Night" in russian
        assert russian != english

    def test_unknown_language_uses_default(self, translator):
        assert translator.t("profile.not_set", "de") == translator.t("profile.not_set", "en")

    def test_missing_key_returns_key(self, translator):
        assert translator.t("salsa.night") == "salsa.night"

    def test_missing_param_returns_template(self, translator):
        assert translator.t("events.created", "en", name="wrong") == TRANSLATIONS["en"]["events.created"]

    @pytest.mark.parametrize("code,expected", [
        ("ru", "ru"),
        ("ru-RU", "ru"),
        ("EN", "en"),
        ("de", "en"),
        (None, "en"),
    ])
    def test_resolve_language(self, translator, code, expected):
        assert translator.resolve_language(code) == expected

    def test_user_language(self, translator):
        class Someone:
            language_code = "ru"

        assert translator.user_language(Someone()) == "ru"
        assert translator.user_language(None) == "en"


class TestTables:
    """Both languages carry the same keys and placeholders"""

    def test_same_keys(self):
        assert set(TRANSLATIONS["en"]) == set(TRANSLATIONS["ru"])

    def test_same_placeholders(self):
        for key, template in TRANSLATIONS["en"].items():
            assert set(PLACEHOLDER.findall(template)) == set(PLACEHOLDER.findall(TRANSLATIONS["ru"][key])), key

    def test_validation_error_keys_exist(self, registry):
        for scenario in registry.list():
            for step in scenario.steps.values():
                if step.validation and step.validation.error_key:
                    assert step.validation.error_key in TRANSLATIONS["en"], step.validation.error_key
