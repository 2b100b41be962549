"""Container image references.

An :class:`Image` is a plain record; everything derived from it (the parsed
current version, the candidate versions, cache keys) is computed by the free
functions of this module.
"""

from dataclasses import dataclass
from typing import Iterable, List
import re

from .exceptions import InvalidImageReference
from .version import Version, parse_tag, tags_to_versions

DEFAULT_DOMAIN = "docker.io"
LEGACY_DEFAULT_DOMAIN = "index.docker.io"
OFFICIAL_NAMESPACE = "library"
DEFAULT_TAG = "latest"

DOMAIN_PATTERN = re.compile(
    r'^[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?'
    r'(?:\.[a-zA-Z0-9](?:[a-zA-Z0-9-]*[a-zA-Z0-9])?)*'
    r'(?::[0-9]+)?$'
)
PATH_COMPONENT_PATTERN = re.compile(r'^[a-z0-9]+(?:(?:[._]|__|-+)[a-z0-9]+)*$')
TAG_PATTERN = re.compile(r'^\w[\w.-]{0,127}$')


@dataclass(frozen=True)
class Image:
    """A registry image: where it lives and which tag is running."""

    domain: str
    path: str
    tag: str
    tag_prefix: str = ""


def _is_domain(component: str) -> bool:
    return "." in component or ":" in component or component == "localhost"


def parse_image(reference: str, tag_prefix: str = "") -> Image:
    """Parse a reference like ``influxdb:1.5.0`` or ``quay.io/org/app:v2``.

    Docker Hub names are normalised the way the docker CLI does it, so
    ``influxdb:1.5.0`` becomes ``docker.io/library/influxdb`` with tag
    ``1.5.0``.
    """
    if not reference or reference != reference.strip():
        raise InvalidImageReference(f"Invalid image reference: '{reference}'")
    if "@" in reference:
        raise InvalidImageReference(
            f"Digest references are not supported, a tag is required: '{reference}'"
        )

    name, tag = reference, DEFAULT_TAG
    colon = reference.rfind(":")
    if colon > reference.rfind("/"):
        name, tag = reference[:colon], reference[colon + 1:]

    components = name.split("/")
    if len(components) > 1 and _is_domain(components[0]):
        domain, path_components = components[0], components[1:]
    else:
        domain, path_components = DEFAULT_DOMAIN, components

    if domain == LEGACY_DEFAULT_DOMAIN:
        domain = DEFAULT_DOMAIN
    if domain == DEFAULT_DOMAIN and len(path_components) == 1:
        path_components = [OFFICIAL_NAMESPACE] + path_components

    if not DOMAIN_PATTERN.match(domain):
        raise InvalidImageReference(f"Invalid registry domain '{domain}' in '{reference}'")
    for component in path_components:
        if not PATH_COMPONENT_PATTERN.match(component):
            raise InvalidImageReference(
                f"Invalid repository name component '{component}' in '{reference}'"
            )
    if not TAG_PATTERN.match(tag):
        raise InvalidImageReference(f"Invalid tag '{tag}' in '{reference}'")

    return Image(
        domain=domain,
        path="/".join(path_components),
        tag=tag,
        tag_prefix=tag_prefix or "",
    )


def image_name(image: Image) -> str:
    """Full repository name without the tag, e.g. ``docker.io/library/influxdb``."""
    return f"{image.domain}/{image.path}"


def image_reference(image: Image) -> str:
    return f"{image_name(image)}:{image.tag}"


def cache_key(image: Image) -> str:
    """Identity of the tag list: the same repository read with another prefix
    yields another candidate set.

    ``#`` never occurs in a repository name, so a prefixed key cannot collide
    with the plain key of another repository.
    """
    if not image.tag_prefix:
        return image_name(image)
    return f"{image_name(image)}#{image.tag_prefix}"


def tag_version(image: Image) -> Version:
    """Version of the running tag, with the prefix stripped."""
    return parse_tag(image.tag, image.tag_prefix)


def image_tag_versions(
    image: Image,
    tags: Iterable[str],
    skip_invalid: bool = True,
) -> List[Version]:
    """Candidate versions published for the image."""
    return tags_to_versions(tags, image.tag_prefix, skip_invalid=skip_invalid)
