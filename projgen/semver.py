"""npm-style semantic version ranges.

Parses the range grammar understood by npm (``^1.2``, ``~1.2.3``, ``1.x``,
``>=1 <2``, ``1.2 - 2.3.4``, ``a || b``) into sets of primitive comparators
and answers two questions about a range: whether a version satisfies it, and
what the lowest version is that satisfies it. Version values themselves are
``semver.Version`` objects.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from typing import Optional

from semver import Version

from projgen.utils import ProjgenError


class ResolutionError(ProjgenError):
    """Raised when a version range is malformed or has no resolvable minimum."""


# ---------------------------------------------------------------------------
# Grammar
# ---------------------------------------------------------------------------

_XR = r"(?:[xX*]|0|[1-9]\d*)"
_PARTIAL_RE = re.compile(
    rf"^v?(?P<major>{_XR})"
    rf"(?:\.(?P<minor>{_XR})"
    rf"(?:\.(?P<patch>{_XR})"
    r"(?:-(?P<pre>[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*))?"
    r"(?:\+[0-9A-Za-z-]+(?:\.[0-9A-Za-z-]+)*)?"
    r")?)?$"
)
_COMPARATOR_RE = re.compile(r"^(?P<op>~>|<=|>=|<|>|=|~|\^)?(?P<partial>.+)$")
_HYPHEN_RE = re.compile(r"^(?P<low>\S+)\s+-\s+(?P<high>\S+)$")
_OP_SPACE_RE = re.compile(r"(~>|<=|>=|<|>|=|~|\^)\s+")

_ANY = Version(0, 0, 0)
_NOTHING = Version(0, 0, 0, prerelease="0")


@dataclass(frozen=True)
class Comparator:
    """A primitive ``<op><version>`` constraint. ``op`` is one of ``=``, ``<``,
    ``<=``, ``>``, ``>=``."""

    op: str
    version: Version

    def test(self, version: Version) -> bool:
        if self.op == "=":
            return version == self.version
        if self.op == "<":
            return version < self.version
        if self.op == "<=":
            return version <= self.version
        if self.op == ">":
            return version > self.version
        return version >= self.version

    def __str__(self) -> str:
        op = "" if self.op == "=" else self.op
        return f"{op}{self.version}"


@dataclass(frozen=True)
class _Partial:
    major: Optional[int]
    minor: Optional[int]
    patch: Optional[int]
    prerelease: Optional[str]

    @property
    def is_any(self) -> bool:
        return self.major is None

    @property
    def is_full(self) -> bool:
        return self.patch is not None

    def floor(self) -> Version:
        return Version(
            self.major or 0,
            self.minor or 0,
            self.patch or 0,
            prerelease=self.prerelease,
        )


def _xr(value: Optional[str]) -> Optional[int]:
    if value is None or value in ("x", "X", "*"):
        return None
    return int(value)


def _parse_partial(text: str, original: str) -> _Partial:
    match = _PARTIAL_RE.match(text)
    if match is None:
        raise ResolutionError(f"invalid version range: {original!r}")
    major = _xr(match.group("major"))
    minor = _xr(match.group("minor")) if major is not None else None
    patch = _xr(match.group("patch")) if minor is not None else None
    prerelease = match.group("pre") if patch is not None else None
    return _Partial(major, minor, patch, prerelease)


def _upper(major: int, minor: int = 0, patch: int = 0) -> Comparator:
    """Exclusive upper bound that also excludes prereleases of the bound."""
    return Comparator("<", Version(major, minor, patch, prerelease="0"))


def _caret(p: _Partial) -> list[Comparator]:
    if p.is_any:
        return []
    low = Comparator(">=", p.floor())
    if p.minor is None:
        return [low, _upper(p.major + 1)]
    if p.patch is None:
        if p.major == 0:
            return [low, _upper(0, p.minor + 1)]
        return [low, _upper(p.major + 1)]
    if p.major != 0:
        return [low, _upper(p.major + 1)]
    if p.minor != 0:
        return [low, _upper(0, p.minor + 1)]
    return [low, _upper(0, 0, p.patch + 1)]


def _tilde(p: _Partial) -> list[Comparator]:
    if p.is_any:
        return []
    low = Comparator(">=", p.floor())
    if p.minor is None:
        return [low, _upper(p.major + 1)]
    return [low, _upper(p.major, p.minor + 1)]


def _xrange(p: _Partial) -> list[Comparator]:
    if p.is_any:
        return []
    if p.is_full:
        return [Comparator("=", p.floor())]
    return _tilde(p)


def _primitive(op: str, p: _Partial) -> list[Comparator]:
    if p.is_any:
        if op in ("<", ">"):
            return [Comparator("<", _NOTHING)]
        return []
    if p.is_full:
        return [Comparator(op, p.floor())]

    if op == ">":
        if p.minor is None:
            return [Comparator(">=", Version(p.major + 1, 0, 0))]
        return [Comparator(">=", Version(p.major, p.minor + 1, 0))]
    if op == ">=":
        return [Comparator(">=", p.floor())]
    if op == "<":
        return [_upper(p.major, p.minor or 0)]
    if op == "<=":
        if p.minor is None:
            return [_upper(p.major + 1)]
        return [_upper(p.major, p.minor + 1)]
    return _xrange(p)


def _hyphen(low: _Partial, high: _Partial) -> list[Comparator]:
    result: list[Comparator] = []
    if not low.is_any:
        result.append(Comparator(">=", low.floor()))
    if high.is_any:
        return result
    if high.is_full:
        result.append(Comparator("<=", high.floor()))
    elif high.minor is None:
        result.append(_upper(high.major + 1))
    else:
        result.append(_upper(high.major, high.minor + 1))
    return result


def _parse_set(text: str, original: str) -> list[Comparator]:
    text = _OP_SPACE_RE.sub(r"\1", text.strip())
    if not text:
        return []

    hyphen = _HYPHEN_RE.match(text)
    if hyphen is not None:
        return _hyphen(
            _parse_partial(hyphen.group("low"), original),
            _parse_partial(hyphen.group("high"), original),
        )

    comparators: list[Comparator] = []
    for token in text.split():
        match = _COMPARATOR_RE.match(token)
        if match is None:
            raise ResolutionError(f"invalid version range: {original!r}")
        op = match.group("op") or ""
        partial = _parse_partial(match.group("partial"), original)
        if op == "^":
            comparators.extend(_caret(partial))
        elif op in ("~", "~>"):
            comparators.extend(_tilde(partial))
        elif op in ("", "="):
            comparators.extend(_xrange(partial))
        else:
            comparators.extend(_primitive(op, partial))
    return comparators


# ---------------------------------------------------------------------------
# Range
# ---------------------------------------------------------------------------


class Range:
    """A parsed npm range: a union (``||``) of comparator sets (intersections)."""

    def __init__(self, raw: str) -> None:
        if raw is None or not raw.strip():
            raise ResolutionError("empty version range")
        self.raw = raw
        self.sets: list[list[Comparator]] = [
            _parse_set(part, raw) for part in raw.split("||")
        ]

    def __repr__(self) -> str:
        return f"Range({self.raw!r})"

    def __str__(self) -> str:
        return " || ".join(
            " ".join(str(c) for c in comparators) or "*" for comparators in self.sets
        )

    def test(self, version: Version | str) -> bool:
        """Return ``True`` if *version* satisfies any comparator set."""
        if isinstance(version, str):
            version = Version.parse(version)
        return any(_test_set(comparators, version) for comparators in self.sets)

    def min_version(self) -> Version | None:
        """Return the lowest version satisfying the range, or ``None``."""
        for candidate in (_ANY, _NOTHING):
            if self.test(candidate):
                return candidate

        lowest: Version | None = None
        for comparators in self.sets:
            set_min: Version | None = None
            for comparator in comparators:
                version = comparator.version
                if comparator.op == ">":
                    if version.prerelease:
                        version = version.replace(prerelease=f"{version.prerelease}.0")
                    else:
                        version = version.bump_patch()
                elif comparator.op in ("<", "<="):
                    continue
                if set_min is None or version > set_min:
                    set_min = version
            if set_min is not None and (lowest is None or set_min < lowest):
                lowest = set_min

        if lowest is not None and self.test(lowest):
            return lowest
        return None


def _test_set(comparators: list[Comparator], version: Version) -> bool:
    if not all(c.test(version) for c in comparators):
        return False
    if not version.prerelease:
        return True
    # A prerelease only satisfies a set that names a prerelease of the same
    # major.minor.patch tuple.
    return any(
        c.version.prerelease
        and (c.version.major, c.version.minor, c.version.patch)
        == (version.major, version.minor, version.patch)
        for c in comparators
    )


def min_version(range_text: str) -> str:
    """Return the minimum version satisfying *range_text* as a string.

    Raises:
        ResolutionError: If the range is empty, malformed or unsatisfiable.
    """
    resolved = Range(range_text).min_version()
    if resolved is None:
        raise ResolutionError(f"unable to determine minimum version for range {range_text!r}")
    return str(resolved)


def satisfies(version: str, range_text: str) -> bool:
    """Return ``True`` if *version* satisfies *range_text*."""
    return Range(range_text).test(version)
