"""Turns an image, a constraint and the published tags into an evaluation."""

from typing import Iterable, Union
import logging

from .comparer import is_stale, next_version
from .exceptions import StaleContainerError
from .image import Image, image_name, image_tag_versions, parse_image, tag_version
from .models import Evaluation, EvaluationError, Job
from .version import RangeConstraint

logger = logging.getLogger(__name__)


def build_evaluation(
    image: Image,
    constraint: Union[str, RangeConstraint],
    tags: Iterable[str],
) -> Evaluation:
    """Evaluate ``image`` against the registry ``tags``.

    Tags without the image's prefix or without a valid version are ignored.
    The next version is rendered with the prefix so that it is a tag that
    can actually be pulled.
    """
    if not isinstance(constraint, RangeConstraint):
        constraint = RangeConstraint.parse(constraint)

    current = tag_version(image)
    selected = next_version(current, constraint, image_tag_versions(image, tags))

    return Evaluation(
        image=image_name(image),
        constraint=str(constraint),
        tag_prefix=image.tag_prefix,
        current_version=image.tag,
        next_version=f"{image.tag_prefix}{selected}",
        stale=is_stale(current, selected),
    )


def failed_evaluation(job: Job, error: Exception) -> Evaluation:
    """Evaluation recording why a background job could not complete."""
    if isinstance(error, StaleContainerError):
        kind = type(error).__name__
    else:
        kind = "InternalError"
    return Evaluation(
        image=job.image,
        constraint=job.constraint,
        tag_prefix=job.tag_prefix,
        error=EvaluationError(message=str(error), kind=kind, status=500),
    )


def local_evaluation(
    reference: str,
    constraint: str,
    tag_prefix: str,
    registry,
) -> Evaluation:
    """Check an image by asking its registry directly.

    ``registry`` is anything with a ``list_tags(domain, path)`` method,
    normally a :class:`~stale_container.registry.RegistryClient`. Invalid
    input is rejected before the registry is contacted and errors are
    never retried here.
    """
    image = parse_image(reference, tag_prefix)
    tag_version(image)
    compiled = RangeConstraint.parse(constraint)

    logger.debug(f"Fetching tags of {image_name(image)}")
    tags = registry.list_tags(image.domain, image.path)
    logger.debug(f"Found {len(tags)} tags for {image_name(image)}")

    return build_evaluation(image, compiled, tags)
