"""Search term validation."""

from __future__ import annotations

from typing import Iterable

from search_session.config import ValidationRule


def validate(
    term: str,
    rules: Iterable[ValidationRule] = (),
    min_length: int = 0,
    max_length: int = 1000,
) -> list[str]:
    """Return the messages of every violated rule, length checks first."""

    errors: list[str] = []
    if len(term) < min_length:
        errors.append(f"Search term must be at least {min_length} characters")
    if len(term) > max_length:
        errors.append(f"Search term must be no more than {max_length} characters")
    for rule in rules:
        if not rule.rule(term):
            errors.append(rule.message)
    return errors


__all__ = ["validate"]
