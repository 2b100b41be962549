"""Selection of the best upgrade candidate under a range constraint."""

from typing import Iterable, List, Union

from .version import RangeConstraint, Version, parse_tag, tags_to_versions


def same_prerelease_shape(v1: Version, v2: Version) -> bool:
    """Return True when both versions belong to the same release track.

    ``1.5.0-alpine`` and ``1.5.6-alpine`` share a track, ``1.5.6`` and
    ``1.5.8-data-alpine`` are on different ones.
    """
    if len(v1.prerelease) != len(v2.prerelease):
        return False
    # numeric identifiers never carry leading zeros, so textual equality
    # is the same as precedence equality
    return all(a == b for a, b in zip(v1.prerelease, v2.prerelease))


def next_version(
    current: Version,
    constraint: RangeConstraint,
    candidates: Iterable[Version],
) -> Version:
    """Pick the highest candidate that satisfies the constraint.

    Only candidates greater than or equal to ``current`` and with the same
    pre-release shape are eligible. ``current`` is returned unchanged when
    nothing qualifies.
    """
    best = current
    for v in candidates:
        if constraint(v) and v >= current and same_prerelease_shape(v, current):
            if v >= best:
                best = v
    return best


def is_stale(current: Version, selected: Version) -> bool:
    return selected > current


def next_tag(
    current_tag: str,
    constraint: Union[str, RangeConstraint],
    tag_prefix: str,
    tags: List[str],
) -> str:
    """Strict variant of :func:`next_version` working on raw tag strings.

    Every tag must carry the prefix and be a valid version. The returned
    string is the bare version, without the prefix.
    """
    current = parse_tag(current_tag, tag_prefix)
    if not isinstance(constraint, RangeConstraint):
        constraint = RangeConstraint.parse(constraint)
    versions = tags_to_versions(tags, tag_prefix, skip_invalid=False)
    return str(next_version(current, constraint, versions))
