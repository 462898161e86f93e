import pytest

import config


@pytest.mark.parametrize("value, expected", [("true", True), ("1", True), (" YES ", True), ("false", False), ("", False)])
def test_parse_bool(value, expected):
    assert config._parse_bool(value) is expected


def test_parse_list_drops_blanks():
    assert config._parse_list(" primary, ,team@group.calendar.google.com,") == [
        "primary",
        "team@group.calendar.google.com",
    ]


def test_parse_labels():
    assert config._parse_labels("primary=Me, work-cal = Work ,broken, =x") == {
        "primary": "Me",
        "work-cal": "Work",
    }


def test_settings_defaults():
    settings = config.Settings()
    assert settings.lead_minutes == 2
    assert settings.alert_duration_seconds == 120
    assert settings.calendar_ids == ("primary",)
    assert settings.calendar_labels == {"primary": "Personal"}
    assert settings.fetch_buffer_minutes == 3
    assert settings.cache_retention_hours == 6
    assert settings.snooze_minutes == 5


def test_load_settings_reads_module_values(monkeypatch):
    monkeypatch.setattr(config, "LEAD_MINUTES", 10)
    monkeypatch.setattr(config, "CALENDAR_IDS", ["primary", "work-cal"])
    monkeypatch.setattr(config, "CALENDAR_LABELS", {"primary": "Personal", "work-cal": "Day job"})
    monkeypatch.setattr(config, "ISOLATE_CALENDAR_FAILURES", True)

    settings = config.load_settings()

    assert settings.lead_minutes == 10
    assert settings.calendar_ids == ("primary", "work-cal")
    assert settings.calendar_labels["work-cal"] == "Day job"
    assert settings.isolate_calendar_failures is True


def test_settings_are_immutable():
    with pytest.raises(AttributeError):
        config.Settings().lead_minutes = 5


def test_calendar_labels_are_read_only():
    labels = {"primary": "Me"}
    settings = config.Settings(calendar_labels=labels)

    with pytest.raises(TypeError):
        settings.calendar_labels["work-cal"] = "Work"
    labels["primary"] = "Changed"
    assert settings.calendar_labels == {"primary": "Me"}


def test_loaded_labels_do_not_alias_module_value(monkeypatch):
    labels = {"primary": "Personal"}
    monkeypatch.setattr(config, "CALENDAR_LABELS", labels)

    settings = config.load_settings()

    with pytest.raises(TypeError):
        settings.calendar_labels["primary"] = "Work"
    assert settings.calendar_labels is not labels
