import pytest

from furtherance.parsing import (
    InputErrorKind,
    ParsedInput,
    TaskInputError,
    format_task_input,
    parse_rate,
    parse_task_input,
    separate_tags,
    split_tags,
    validate_task_fields,
)


def test_parse_full_input():
    parsed = parse_task_input("Write report #work #urgent @ClientX $50")
    assert parsed.name == "Write report"
    assert parsed.tags == ("work", "urgent")
    assert parsed.project == "ClientX"
    assert parsed.rate == 50
    assert parsed.tags_string == "#work #urgent"


def test_parse_name_only():
    parsed = parse_task_input("  Reading  ")
    assert parsed == ParsedInput(name="Reading")


def test_tags_are_lowercased_and_deduplicated():
    parsed = parse_task_input("Task #Alpha #beta #ALPHA # #beta")
    assert parsed.tags == ("alpha", "beta")


def test_tags_may_contain_spaces():
    parsed = parse_task_input("Task #with multiple words #x")
    assert parsed.tags == ("with multiple words", "x")


def test_empty_project_is_none():
    assert parse_task_input("Task @ #a").project is None


def test_custom_currency_and_decimal_comma():
    parsed = parse_task_input("Task €12,5", currency="€")
    assert parsed.rate == 12.5


@pytest.mark.parametrize(
    "raw, kind",
    [
        ("", InputErrorKind.EMPTY_NAME),
        ("   ", InputErrorKind.EMPTY_NAME),
        ("#tag first", InputErrorKind.STARTS_WITH_TAG),
        ("@project first", InputErrorKind.STARTS_WITH_PROJECT),
        ("$10 first", InputErrorKind.STARTS_WITH_CURRENCY),
        ("Task @one @two", InputErrorKind.MULTIPLE_PROJECTS),
        ("Task $1 $2", InputErrorKind.MULTIPLE_RATES),
        ("Task $abc", InputErrorKind.INVALID_RATE),
        ("Task $-5", InputErrorKind.INVALID_RATE),
    ],
)
def test_invalid_input(raw, kind):
    with pytest.raises(TaskInputError) as excinfo:
        parse_task_input(raw)
    assert excinfo.value.kind is kind
    assert excinfo.value.message


def test_error_message_mentions_currency():
    with pytest.raises(TaskInputError) as excinfo:
        parse_task_input("Task £1 £2", currency="£")
    assert "£" in excinfo.value.message


def test_separate_tags_normalizes():
    assert separate_tags("#CAse #with multiple # #tags") == "#case #with multiple #tags"
    assert separate_tags("") == ""
    assert split_tags("#a #b #a") == ["a", "b"]


def test_format_task_input_parses_back():
    parsed = parse_task_input("Write report @ClientX #work #urgent $50")
    text = format_task_input(parsed)
    assert text == "Write report @ClientX #work #urgent $50.00"
    assert parse_task_input(text) == parsed


@pytest.mark.parametrize(
    "raw",
    [
        "Volunteer $0",
        "Read",
        "Read #book",
        "Write @Client",
        "Consult @Acme #x $12.345",
    ],
)
def test_format_task_input_keeps_every_field(raw):
    parsed = parse_task_input(raw)
    assert parse_task_input(format_task_input(parsed)) == parsed


def test_format_task_input_keeps_zero_rate():
    parsed = parse_task_input("Volunteer $0")
    assert parsed.rate == 0.0
    assert format_task_input(parsed) == "Volunteer $0.00"


def test_parse_rate():
    assert parse_rate("7,25") == 7.25
    with pytest.raises(ValueError):
        parse_rate("nan")
    with pytest.raises(ValueError):
        parse_rate("-1")


def test_validate_task_fields():
    assert validate_task_fields("Task", "proj", "#a #b", "12") == []
    errors = validate_task_fields("", "p@x", "nohash", "$3")
    assert "Task name cannot be empty." in errors
    assert "Project cannot contain a '#' or '@'." in errors
    assert "Tags must start with a '#'." in errors
    assert "Do not include currency symbol ('$') in rate." in errors


def test_validate_task_fields_skips_missing_name():
    assert validate_task_fields(None, rate_text="abc") == ["Rate is not a valid number."]
