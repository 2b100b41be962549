"""Semantic version parsing, comparison and range constraints."""

from dataclasses import dataclass, field
from functools import total_ordering
from typing import Callable, Dict, Iterable, List, Optional, Tuple
import logging
import operator
import re

from .exceptions import InvalidConstraint, InvalidVersion, PrefixMismatch

logger = logging.getLogger(__name__)

_NUMERIC = r'0|[1-9]\d*'
_PRERELEASE_IDENT = r'(?:0|[1-9]\d*|\d*[a-zA-Z-][0-9a-zA-Z-]*)'
_BUILD_IDENT = r'[0-9a-zA-Z-]+'


@total_ordering
@dataclass
class Version:
    """Semantic version (semver.org 2.0.0) with comparison support.

    Build metadata is kept for display but ignored for ordering and equality.
    """

    major: int
    minor: int
    patch: int
    prerelease: Tuple[str, ...] = ()
    build: Tuple[str, ...] = ()

    VERSION_PATTERN = re.compile(
        rf'^({_NUMERIC})\.({_NUMERIC})\.({_NUMERIC})'
        rf'(?:-({_PRERELEASE_IDENT}(?:\.{_PRERELEASE_IDENT})*))?'
        rf'(?:\+({_BUILD_IDENT}(?:\.{_BUILD_IDENT})*))?$'
    )

    @classmethod
    def parse(cls, version_str: str) -> 'Version':
        """Parse version string like '1.5.0', '1.5.0-alpine' or '2.0.3-beta.2+build.7'."""
        match = cls.VERSION_PATTERN.match(version_str)
        if not match:
            raise InvalidVersion(f"Invalid semantic version: '{version_str}'")

        prerelease = tuple(match.group(4).split('.')) if match.group(4) else ()
        build = tuple(match.group(5).split('.')) if match.group(5) else ()
        return cls(
            int(match.group(1)),
            int(match.group(2)),
            int(match.group(3)),
            prerelease,
            build,
        )

    @property
    def is_prerelease(self) -> bool:
        return bool(self.prerelease)

    def _comparison_tuple(self) -> Tuple:
        """Tuple for ordering: prereleases sort before the release.

        Numeric identifiers sort before alphanumeric ones.
        """
        if not self.prerelease:
            return (self.major, self.minor, self.patch, 1, ())
        identifiers = tuple(
            (0, int(ident), '') if ident.isdigit() else (1, 0, ident)
            for ident in self.prerelease
        )
        return (self.major, self.minor, self.patch, 0, identifiers)

    def __lt__(self, other: 'Version') -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._comparison_tuple() < other._comparison_tuple()

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Version):
            return NotImplemented
        return self._comparison_tuple() == other._comparison_tuple()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        if self.prerelease:
            base = f"{base}-{'.'.join(self.prerelease)}"
        if self.build:
            base = f"{base}+{'.'.join(self.build)}"
        return base

    def __hash__(self) -> int:
        return hash(self._comparison_tuple())


def parse_tag(tag: str, prefix: str = "") -> Version:
    """Strip the tag prefix and parse the remainder as a semantic version."""
    if prefix:
        if not tag.startswith(prefix):
            raise PrefixMismatch(tag, prefix)
        tag = tag[len(prefix):]
    return Version.parse(tag)


def tags_to_versions(
    tags: Iterable[str],
    prefix: str = "",
    skip_invalid: bool = True,
) -> List[Version]:
    """Convert tags to versions, keeping the order of the input.

    Tags without the prefix or without a valid version are dropped when
    ``skip_invalid`` is set, otherwise the first failure is raised.
    """
    versions = []
    for tag in tags:
        try:
            versions.append(parse_tag(tag, prefix))
        except (PrefixMismatch, InvalidVersion) as e:
            if not skip_invalid:
                raise
            logger.debug(f"Skipping image tag {tag}: {e}")
    return versions


_OPERATORS: Dict[str, Callable[[Version, Version], bool]] = {
    "": operator.eq,
    "=": operator.eq,
    "==": operator.eq,
    "!": operator.ne,
    "!=": operator.ne,
    "<": operator.lt,
    "<=": operator.le,
    ">": operator.gt,
    ">=": operator.ge,
}


@dataclass
class Comparator:
    """A single ``<operator> <version>`` condition."""

    op: str
    version: Version

    COMPARATOR_PATTERN = re.compile(r'^(<=|>=|==|!=|<|>|=|!)?(.+)$')
    OPERATOR_ONLY_PATTERN = re.compile(r'^[<>=!]+$')

    @classmethod
    def parse(cls, text: str) -> 'Comparator':
        match = cls.COMPARATOR_PATTERN.match(text)
        if not match:
            raise InvalidConstraint(f"Invalid condition: '{text}'")
        op = match.group(1) or ""
        try:
            version = Version.parse(match.group(2))
        except InvalidVersion as e:
            raise InvalidConstraint(f"Invalid condition '{text}': {e}") from e
        return cls(op, version)

    def matches(self, version: Version) -> bool:
        return _OPERATORS[self.op](version, self.version)

    def __str__(self) -> str:
        return f"{self.op}{self.version}"


@dataclass
class RangeConstraint:
    """An OR-list of AND-groups of comparators.

    AND binds tighter than OR and brackets are not supported, so
    ``'>1.0.0 <2.0.0 || >3.0.0 !4.2.1'`` matches 1.2.3 and 3.1.1 but
    neither 2.1.1 nor 4.2.1.
    """

    groups: List[List[Comparator]] = field(default_factory=list)
    expression: Optional[str] = None

    @classmethod
    def parse(cls, expression: str) -> 'RangeConstraint':
        if not expression or not expression.strip():
            raise InvalidConstraint("Empty constraint")

        groups = []
        for part in expression.split("||"):
            tokens = cls._split_conditions(part)
            if not tokens:
                raise InvalidConstraint(f"Empty condition group in constraint '{expression}'")
            groups.append([Comparator.parse(token) for token in tokens])

        return cls(groups, expression)

    @staticmethod
    def _split_conditions(part: str) -> List[str]:
        """Split an AND-group on whitespace, gluing bare operators to their version."""
        conditions = []
        pending = ""
        for token in part.split():
            token = pending + token
            pending = ""
            if Comparator.OPERATOR_ONLY_PATTERN.match(token):
                pending = token
                continue
            conditions.append(token)
        if pending:
            raise InvalidConstraint(f"Operator '{pending}' is not followed by a version")
        return conditions

    def matches(self, version: Version) -> bool:
        return any(
            all(comparator.matches(version) for comparator in group)
            for group in self.groups
        )

    def __call__(self, version: Version) -> bool:
        return self.matches(version)

    def __str__(self) -> str:
        if self.expression is not None:
            return self.expression
        return " || ".join(" ".join(str(c) for c in group) for group in self.groups)
