"""Version and version-range parsing for plugin compatibility checks.

Plugins declare which host versions they support, and which versions of
other plugins they depend on, as *ranges*. Ranges are evaluated with
:mod:`packaging` (PEP 440 specifier sets) so that the usual Python forms
work unchanged::

    >=0.12.0        ~=1.2        >=1.0,<2.0        ==1.*

The semver range shorthands that plugin authors coming from other
ecosystems tend to write are translated into equivalent specifier sets
before evaluation:

* ``^1.2.3`` -- compatible with 1.x (``>=1.2.3,<2.0.0``); for ``0.y.z`` the
  minor version is the breaking boundary.
* ``~1.2.3`` -- patch-level changes (``>=1.2.3,<1.3.0``).
* ``1.x`` / ``1.2.*`` -- x-ranges.
* ``*`` or an empty string -- any version.
* ``a || b`` -- matches when any alternative matches.
* Space-separated comparators (``>=1.0.0 <2.0.0``) are intersected.
"""

from __future__ import annotations

import re
from typing import Optional

from packaging.specifiers import InvalidSpecifier, SpecifierSet
from packaging.version import InvalidVersion, Version

_COMPARATOR_RE = re.compile(r"^(===|==|!=|~=|<=|>=|<|>|=|\^|~)?\s*v?(.*)$")
_WILDCARDS = {"x", "X", "*"}


class InvalidRangeError(ValueError):
    """Raised when a version range string cannot be parsed."""


def parse_version(value: str) -> Version:
    """Parse *value* as a version, tolerating a leading ``v``.

    Raises:
        InvalidVersion: If *value* is not a valid version string.
    """
    text = value.strip()
    if text[:1] in ("v", "V"):
        text = text[1:]
    return Version(text)


def is_valid_version(value: str) -> bool:
    """Return ``True`` when *value* parses as a version."""
    try:
        parse_version(value)
    except InvalidVersion:
        return False
    return True


def parse_range(value: str) -> list[SpecifierSet]:
    """Parse a version range into a list of alternative specifier sets.

    A version satisfies the range when it is contained in *any* of the
    returned sets. An empty set matches every version.

    Args:
        value: The range string, e.g. ``"^1.2.0"`` or ``">=0.12,<1.0"``.

    Returns:
        One :class:`~packaging.specifiers.SpecifierSet` per ``||``
        alternative.

    Raises:
        InvalidRangeError: If any part of *value* cannot be parsed.
    """
    alternatives = value.split("||")
    return [_parse_alternative(alt.strip(), value) for alt in alternatives]


def is_valid_range(value: str) -> bool:
    """Return ``True`` when *value* parses as a version range."""
    try:
        parse_range(value)
    except InvalidRangeError:
        return False
    return True


def satisfies(version: str, range_: str) -> bool:
    """Check whether *version* falls inside *range_*.

    Pre-release versions are accepted when the range allows them
    explicitly or when they are the only candidates, following
    :meth:`SpecifierSet.contains` with ``prereleases=True`` so that a
    host running ``1.0.0rc1`` is still matched by ``>=0.9``.

    Returns:
        ``False`` if either argument is invalid, otherwise whether the
        version matches at least one alternative of the range.
    """
    try:
        parsed = parse_version(version)
        alternatives = parse_range(range_)
    except (InvalidVersion, InvalidRangeError):
        return False
    return any(spec.contains(parsed, prereleases=True) for spec in alternatives)


# --- internals ---


def _parse_alternative(text: str, original: str) -> SpecifierSet:
    if text in ("", "*", "x", "X"):
        return SpecifierSet()

    # PEP 440 specifier sets are comma separated; semver comparators are
    # whitespace separated. Accept both.
    tokens = [tok for tok in re.split(r"[,\s]+", _join_operators(text)) if tok]
    clauses: list[str] = []
    for token in tokens:
        clauses.extend(_translate_token(token, original))

    try:
        return SpecifierSet(",".join(clauses))
    except InvalidSpecifier as exc:
        raise InvalidRangeError(f"Invalid version range '{original}': {exc}") from exc


def _join_operators(text: str) -> str:
    """Remove whitespace between an operator and its version (``>= 1.0``)."""
    return re.sub(r"(===|==|!=|~=|<=|>=|<|>|=|\^|~)\s+", r"\1", text)


def _translate_token(token: str, original: str) -> list[str]:
    match = _COMPARATOR_RE.match(token)
    if match is None:  # pragma: no cover - the pattern matches any string
        raise InvalidRangeError(f"Invalid version range '{original}'")
    op, rest = match.group(1) or "", match.group(2)
    if not rest:
        raise InvalidRangeError(f"Invalid version range '{original}': missing version")

    parts = rest.split(".")
    if op in ("==", "!=", "~=", "==="):
        # Already PEP 440; validate by constructing later.
        return [f"{op}{rest}"]

    numbers = _numeric_parts(parts, original)
    if op == "^":
        return _caret(numbers, rest, original)
    if op == "~":
        return _tilde(numbers, rest, original)
    if op in ("", "="):
        return _exact_or_xrange(numbers, rest, original)
    # <, <=, >, >= with possible wildcards: treat missing parts as zero.
    filled = [n if n is not None else 0 for n in numbers]
    if any(n is None for n in numbers):
        return [f"{op}{_fmt(filled)}"]
    return [f"{op}{rest}"]


def _numeric_parts(parts: list[str], original: str) -> list[Optional[int]]:
    """Return up to three numeric components, ``None`` for wildcards."""
    numbers: list[Optional[int]] = []
    for index, part in enumerate(parts[:3]):
        if part in _WILDCARDS:
            numbers.append(None)
            continue
        if index == len(parts[:3]) - 1:
            # Last component may carry a pre-release/build suffix.
            digits = re.match(r"^\d+", part)
            if digits is None:
                raise InvalidRangeError(f"Invalid version range '{original}'")
            numbers.append(int(digits.group(0)))
            continue
        if not part.isdigit():
            raise InvalidRangeError(f"Invalid version range '{original}'")
        numbers.append(int(part))
    while len(numbers) < 3:
        numbers.append(None)
    return numbers


def _caret(numbers: list[Optional[int]], rest: str, original: str) -> list[str]:
    major, minor, patch = numbers
    if major is None:
        return []
    lower = _lower_bound(numbers, rest)
    if major > 0 or minor is None:
        upper = _fmt([major + 1, 0, 0])
    elif minor > 0 or patch is None:
        upper = _fmt([0, minor + 1, 0])
    else:
        upper = _fmt([0, 0, patch + 1])
    return [f">={lower}", f"<{upper}"]


def _tilde(numbers: list[Optional[int]], rest: str, original: str) -> list[str]:
    major, minor, _patch = numbers
    if major is None:
        return []
    lower = _lower_bound(numbers, rest)
    if minor is None:
        upper = _fmt([major + 1, 0, 0])
    else:
        upper = _fmt([major, minor + 1, 0])
    return [f">={lower}", f"<{upper}"]


def _exact_or_xrange(numbers: list[Optional[int]], rest: str, original: str) -> list[str]:
    major, minor, patch = numbers
    if major is None:
        return []
    if minor is None:
        return [f">={_fmt([major, 0, 0])}", f"<{_fmt([major + 1, 0, 0])}"]
    if patch is None:
        return [f">={_fmt([major, minor, 0])}", f"<{_fmt([major, minor + 1, 0])}"]
    return [f"=={rest}"]


def _lower_bound(numbers: list[Optional[int]], rest: str) -> str:
    if all(n is not None for n in numbers):
        return rest
    return _fmt([n if n is not None else 0 for n in numbers])


def _fmt(numbers: list[Optional[int]]) -> str:
    return ".".join(str(n) for n in numbers)
