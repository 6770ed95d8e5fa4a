"""Search-string helpers and a small in-process TDQ matcher.

The full TDQ language lives in td itself. The monitor only needs enough of
it to evaluate board queries and the search bar against the in-process
store, and to rewrite its own ``sort:`` and ``type=`` clauses.
"""

from __future__ import annotations

import logging
import re
import shlex
from datetime import datetime, timedelta

from .models import Issue

logger = logging.getLogger(__name__)

SORT_MODES = ("priority", "created", "updated")
SORT_CLAUSES = {
    "priority": "sort:priority",
    "created": "sort:-created",
    "updated": "sort:-updated",
}
TYPE_FILTERS = ("", "epic", "task", "bug", "feature", "chore")

_COMPARISON = re.compile(r"^([a-z_]+)(!=|>=|<=|=|~|<|>)(.*)$", re.IGNORECASE)
_FUNCTION = re.compile(r"^(has|is|any|descendant_of)\((.*)\)$", re.IGNORECASE)
_RELATIVE_DATE = re.compile(r"^-(\d+)([dwm])$")


class QueryError(ValueError):
    """Raised for query text the matcher cannot understand."""


def next_sort_mode(mode: str) -> str:
    index = SORT_MODES.index(mode) if mode in SORT_MODES else 0
    return SORT_MODES[(index + 1) % len(SORT_MODES)]


def next_type_filter(current: str) -> str:
    index = TYPE_FILTERS.index(current) if current in TYPE_FILTERS else 0
    return TYPE_FILTERS[(index + 1) % len(TYPE_FILTERS)]


def update_query_sort(query: str, sort_mode: str) -> str:
    """Replace any ``sort:`` words in ``query`` with the clause for ``sort_mode``."""
    words = [w for w in query.split() if not w.lower().startswith("sort:")]
    words.append(SORT_CLAUSES.get(sort_mode, SORT_CLAUSES["priority"]))
    return " ".join(words)


def update_query_type(query: str, type_filter: str) -> str:
    """Replace any ``type=`` words in ``query``; an empty filter just removes them."""
    words = [w for w in query.split() if not w.lower().startswith("type=")]
    if type_filter:
        words.append(f"type={type_filter}")
    return " ".join(words)


def _tokens(query: str) -> list[str]:
    try:
        return shlex.split(query)
    except ValueError as e:
        raise QueryError(f"Unbalanced quotes in query: {e}") from e


def _field_value(issue: Issue, name: str) -> object:
    name = name.lower()
    if name in ("status", "type"):
        return getattr(issue, name).value
    if name in ("labels", "label"):
        return issue.labels
    if name in ("parent", "parent_id", "epic"):
        return issue.parent_id
    if name in ("created", "updated", "closed"):
        return getattr(issue, f"{name}_at")
    if name in ("implementer", "reviewer"):
        return getattr(issue, f"{name}_session")
    if hasattr(issue, name):
        return getattr(issue, name)
    raise QueryError(f"Unknown field: {name}")


def _literal(value: str, session_id: str) -> object:
    if value == "@me":
        return session_id
    if value == "EMPTY":
        return ""
    if value == "today":
        return datetime.now().replace(hour=0, minute=0, second=0, microsecond=0)
    match = _RELATIVE_DATE.match(value)
    if match:
        amount, unit = int(match.group(1)), match.group(2)
        days = {"d": 1, "w": 7, "m": 30}[unit] * amount
        return datetime.now() - timedelta(days=days)
    return value


def _compare(actual: object, op: str, expected: object) -> bool:
    if isinstance(actual, list):
        if op == "=":
            return str(expected).lower() in [a.lower() for a in actual]
        if op == "!=":
            return str(expected).lower() not in [a.lower() for a in actual]
        if op == "~":
            return any(str(expected).lower() in a.lower() for a in actual)
        raise QueryError(f"Operator {op} not supported for lists")

    if isinstance(actual, datetime) or isinstance(expected, datetime):
        if not isinstance(actual, datetime) or not isinstance(expected, datetime):
            return False
        left, right = actual, expected
    elif isinstance(actual, bool):
        left, right = str(actual).lower(), str(expected).lower()
    elif isinstance(actual, int):
        try:
            left, right = actual, int(str(expected))
        except ValueError as e:
            raise QueryError(f"Expected a number, got {expected!r}") from e
    else:
        left, right = str(actual).lower(), str(expected).lower()

    if op == "=":
        return left == right
    if op == "!=":
        return left != right
    if op == "~":
        return str(right) in str(left)
    if op == "<":
        return left < right
    if op == ">":
        return left > right
    if op == "<=":
        return left <= right
    return left >= right


def _term(issue: Issue, token: str, session_id: str) -> bool:
    function = _FUNCTION.match(token)
    if function:
        name, args = function.group(1).lower(), [a.strip() for a in function.group(2).split(",")]
        if name == "has":
            return bool(_field_value(issue, args[0]))
        if name == "is":
            return issue.status.value == args[0].lower()
        if name == "any":
            actual = _field_value(issue, args[0])
            return any(_compare(actual, "=", _literal(v, session_id)) for v in args[1:])
        # descendant_of needs the whole tree; only direct children are visible here
        return issue.parent_id == args[0]

    comparison = _COMPARISON.match(token)
    if comparison:
        name, op, value = comparison.groups()
        return _compare(_field_value(issue, name), op, _literal(value, session_id))

    needle = token.lower()
    haystack = " ".join([issue.id, issue.title, issue.description, *issue.labels]).lower()
    return needle in haystack


def _normalize(tokens: list[str]) -> list[str]:
    """Join ``field``, ``op``, ``value`` written with spaces into one token."""
    ops = {"=", "!=", "~", "<", ">", "<=", ">="}
    result: list[str] = []
    i = 0
    while i < len(tokens):
        if i + 2 < len(tokens) and tokens[i + 1] in ops:
            result.append(tokens[i] + tokens[i + 1] + tokens[i + 2])
            i += 3
        else:
            result.append(tokens[i])
            i += 1
    return result


def _ungroup(token: str) -> str:
    """Drop grouping parentheses, keeping the ones a function call needs."""
    token = token.lstrip("(")
    while token.endswith(")") and token.count(")") > token.count("("):
        token = token[:-1]
    return token


def matches(issue: Issue, query: str, session_id: str = "") -> bool:
    """Evaluate ``query`` against one issue.

    Supports ``field<op>value`` comparisons, ``has/is/any/descendant_of``,
    bare words (substring of id, title, description or labels), ``NOT``,
    implicit or explicit ``AND``, and top-level ``OR``. ``sort:`` clauses
    are ignored here.
    """
    tokens = [t for t in _normalize(_tokens(query)) if not t.lower().startswith("sort:")]
    if not tokens:
        return True

    groups: list[list[str]] = [[]]
    for token in tokens:
        if token.upper() == "OR":
            groups.append([])
        elif token.upper() != "AND":
            groups[-1].append(token)

    for group in groups:
        ok = True
        negate = False
        for token in group:
            if token.upper() == "NOT":
                negate = not negate
                continue
            result = _term(issue, _ungroup(token), session_id)
            if negate:
                result = not result
                negate = False
            if not result:
                ok = False
                break
        if ok and group:
            return True
    return False


def sort_mode_from_query(query: str) -> str | None:
    for word in query.split():
        if word.lower().startswith("sort:"):
            field_name = word[5:].lstrip("-").lower()
            if field_name in SORT_MODES:
                return field_name
    return None


def sort_issues(issues: list[Issue], sort_mode: str = "priority") -> list[Issue]:
    """Store ordering: priority then most recently updated, or newest first."""
    if sort_mode == "created":
        return sorted(issues, key=lambda i: i.created_at, reverse=True)
    if sort_mode == "updated":
        return sorted(issues, key=lambda i: i.updated_at, reverse=True)
    by_updated = sorted(issues, key=lambda i: i.updated_at, reverse=True)
    return sorted(by_updated, key=lambda i: i.priority)


def filter_issues(issues: list[Issue], query: str, session_id: str = "") -> list[Issue]:
    """Issues matching ``query``, in the order its ``sort:`` clause asks for."""
    matched = [i for i in issues if matches(i, query, session_id)]
    return sort_issues(matched, sort_mode_from_query(query) or "priority")
