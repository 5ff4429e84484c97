"""Parser for the ``name #tag @project $rate`` timer input."""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import Iterable, Optional

TAG_MARKER = "#"
PROJECT_MARKER = "@"
NO_TAGS_LABEL = "No tags"


class InputErrorKind(str, Enum):
    EMPTY_NAME = "empty_name"
    STARTS_WITH_TAG = "starts_with_tag"
    STARTS_WITH_PROJECT = "starts_with_project"
    STARTS_WITH_CURRENCY = "starts_with_currency"
    MULTIPLE_PROJECTS = "multiple_projects"
    MULTIPLE_RATES = "multiple_rates"
    INVALID_RATE = "invalid_rate"


_MESSAGES = {
    InputErrorKind.EMPTY_NAME: "The task name cannot be empty.",
    InputErrorKind.STARTS_WITH_TAG: (
        "A task name must be provided before tags. The first character cannot be a '#'."
    ),
    InputErrorKind.STARTS_WITH_PROJECT: (
        "A task name must be provided before the project. "
        "The first character cannot be a '@'."
    ),
    InputErrorKind.STARTS_WITH_CURRENCY: (
        "A task name must be provided before the rate. "
        "The first character cannot be a '{currency}'."
    ),
    InputErrorKind.MULTIPLE_PROJECTS: (
        "A task cannot contain more than one project (marked by '@')."
    ),
    InputErrorKind.MULTIPLE_RATES: (
        "A task cannot contain more than one rate (marked by '{currency}')."
    ),
    InputErrorKind.INVALID_RATE: "The rate is not a valid number.",
}


class TaskInputError(ValueError):
    """Raised when timer input text cannot be turned into a task."""

    def __init__(self, kind: InputErrorKind, currency: str = "$") -> None:
        self.kind = kind
        self.message = _MESSAGES[kind].format(currency=currency)
        super().__init__(self.message)


@dataclass(frozen=True)
class ParsedInput:
    name: str
    tags: tuple[str, ...] = ()
    project: Optional[str] = None
    rate: Optional[float] = None

    @property
    def tags_string(self) -> str:
        return join_tags(self.tags)


def join_tags(tags: Iterable[str]) -> str:
    """Render tags the way they are stored: ``#one #two``."""
    return " ".join(f"{TAG_MARKER}{tag}" for tag in tags)


def split_tags(tags_string: str) -> list[str]:
    return _normalized_tags(tags_string.split(TAG_MARKER))


def separate_tags(raw: str) -> str:
    """Normalize a free-form tag string (``#CAse # #dup #dup``) to ``#case #dup``."""
    return join_tags(split_tags(raw))


def _normalized_tags(pieces: Iterable[str]) -> list[str]:
    seen: set[str] = set()
    tags: list[str] = []
    for piece in pieces:
        tag = piece.strip().lower()
        if not tag or tag in seen:
            continue
        seen.add(tag)
        tags.append(tag)
    return tags


def parse_rate(text: str) -> float:
    """Parse a rate, accepting ``,`` as the decimal separator."""
    value = float(text.strip().replace(",", "."))
    if not math.isfinite(value) or value < 0:
        raise ValueError(f"invalid rate: {text!r}")
    return value


def parse_task_input(raw: str, currency: str = "$") -> ParsedInput:
    """Split raw timer input into name, tags, project and rate.

    Everything before the first marker (``#``, ``@`` or the currency symbol)
    is the name. Each ``#`` segment is a tag, lowercased and deduplicated in
    order of first appearance. At most one ``@`` project and one rate segment
    are allowed.
    """
    text = raw.strip()
    if not text:
        raise TaskInputError(InputErrorKind.EMPTY_NAME, currency)

    first = text[0]
    if first == TAG_MARKER:
        raise TaskInputError(InputErrorKind.STARTS_WITH_TAG, currency)
    if first == PROJECT_MARKER:
        raise TaskInputError(InputErrorKind.STARTS_WITH_PROJECT, currency)
    if first == currency:
        raise TaskInputError(InputErrorKind.STARTS_WITH_CURRENCY, currency)
    if text.count(PROJECT_MARKER) > 1:
        raise TaskInputError(InputErrorKind.MULTIPLE_PROJECTS, currency)
    if text.count(currency) > 1:
        raise TaskInputError(InputErrorKind.MULTIPLE_RATES, currency)

    markers = {TAG_MARKER, PROJECT_MARKER, currency}
    segments: list[tuple[str, list[str]]] = []
    name_chars: list[str] = []
    current: Optional[list[str]] = None
    for char in text:
        if char in markers:
            current = []
            segments.append((char, current))
            continue
        if current is None:
            name_chars.append(char)
        else:
            current.append(char)

    name = "".join(name_chars).strip()
    if not name:
        raise TaskInputError(InputErrorKind.EMPTY_NAME, currency)

    tag_pieces: list[str] = []
    project: Optional[str] = None
    rate: Optional[float] = None
    for marker, chars in segments:
        body = "".join(chars)
        if marker == TAG_MARKER:
            tag_pieces.append(body)
        elif marker == PROJECT_MARKER:
            project = body.strip() or None
        else:
            try:
                rate = parse_rate(body)
            except ValueError as exc:
                raise TaskInputError(InputErrorKind.INVALID_RATE, currency) from exc

    return ParsedInput(
        name=name,
        tags=tuple(_normalized_tags(tag_pieces)),
        project=project,
        rate=rate,
    )


def format_rate(rate: float) -> str:
    if rate == round(rate, 2):
        return f"{rate:.2f}"
    return repr(rate)


def format_task_input(parsed: ParsedInput, currency: str = "$") -> str:
    """Build timer input text that parses back to ``parsed``."""
    parts = [parsed.name]
    if parsed.project:
        parts.append(f"{PROJECT_MARKER}{parsed.project}")
    if parsed.tags:
        parts.append(parsed.tags_string)
    if parsed.rate is not None:
        parts.append(f"{currency}{format_rate(parsed.rate)}")
    return " ".join(parts)


def validate_task_fields(
    name: Optional[str],
    project: str = "",
    tags: str = "",
    rate_text: str = "",
    currency: str = "$",
) -> list[str]:
    """Check the separate fields of the add/edit forms; return error messages."""
    errors: list[str] = []
    if name is not None:
        if not name.strip():
            errors.append("Task name cannot be empty.")
        elif TAG_MARKER in name or PROJECT_MARKER in name:
            errors.append("Task name cannot contain a '#' or '@'.")

    if TAG_MARKER in project or PROJECT_MARKER in project:
        errors.append("Project cannot contain a '#' or '@'.")

    stripped_tags = tags.strip()
    if stripped_tags:
        if not stripped_tags.startswith(TAG_MARKER):
            errors.append("Tags must start with a '#'.")
        elif PROJECT_MARKER in stripped_tags:
            errors.append("Tags cannot contain an '@'.")

    if rate_text.strip():
        if currency in rate_text:
            errors.append(f"Do not include currency symbol ('{currency}') in rate.")
        else:
            try:
                parse_rate(rate_text)
            except ValueError:
                errors.append("Rate is not a valid number.")
    return errors
