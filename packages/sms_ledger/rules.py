"""Declarative rule tables and the generic matcher that evaluates them.

Every keyword heuristic in the pipeline (direction, payment channel, category
keywords, sender aliases) is an ordered tuple of ``Rule`` values. Order is
significant: ``first_match`` returns the result of the first rule whose
predicate accepts the subject.

Predicates receive the subject as given; callers decide whether to lower-case
first. Term-based builders compare lower-cased terms against the subject
verbatim, so pass lower-cased text to them.
"""

from __future__ import annotations

import re
from collections.abc import Callable, Iterable, Sequence
from dataclasses import dataclass
from typing import Generic, TypeVar

T = TypeVar("T")

type Predicate = Callable[[str], bool]


@dataclass(frozen=True, slots=True)
class Rule(Generic[T]):
    predicate: Predicate
    result: T
    name: str = ""


def first_match(rules: Iterable[Rule[T]], subject: str, default: T) -> T:
    """Return the result of the first rule accepting ``subject`` or ``default``."""

    for rule in rules:
        if rule.predicate(subject):
            return rule.result
    return default


def all_matches(rules: Iterable[Rule[T]], subject: str) -> list[T]:
    return [rule.result for rule in rules if rule.predicate(subject)]


def count_matches(rules: Iterable[Rule[T]], subject: str) -> int:
    return sum(1 for rule in rules if rule.predicate(subject))


# ---------------------------------------------------------------------------
# Predicate builders
# ---------------------------------------------------------------------------


def contains_any(*terms: str) -> Predicate:
    """Accept subjects containing at least one of ``terms``."""

    frozen = tuple(t.lower() for t in terms)
    return lambda subject: any(t in subject for t in frozen)


def contains_all(*terms: str) -> Predicate:
    frozen = tuple(t.lower() for t in terms)
    return lambda subject: all(t in subject for t in frozen)


def matches(pattern: str | re.Pattern[str], flags: int = 0) -> Predicate:
    """Accept subjects where ``pattern`` is found anywhere (``re.search``)."""

    rx = pattern if isinstance(pattern, re.Pattern) else re.compile(pattern, flags)
    return lambda subject: rx.search(subject) is not None


def all_of(*predicates: Predicate) -> Predicate:
    return lambda subject: all(p(subject) for p in predicates)


def keyword_table(entries: Sequence[tuple[T, Sequence[str]]]) -> tuple[Rule[T], ...]:
    """Build one containment rule per ``(result, keywords)`` entry, keeping order."""

    return tuple(
        Rule(contains_any(*keywords), result, name=str(result)) for result, keywords in entries
    )


__all__ = [
    "Predicate",
    "Rule",
    "all_matches",
    "all_of",
    "contains_all",
    "contains_any",
    "count_matches",
    "first_match",
    "keyword_table",
    "matches",
]
