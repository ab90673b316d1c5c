"""Description and tag pipelines: provider call with retries, cleanup, merge."""

import re
from collections.abc import Iterable, Sequence

from loguru import logger

from exif_ai.merge import ExistingFields, merge_description, merge_tags
from exif_ai.normalize import format_tags, unique
from exif_ai.providers import ImageProvider, ProviderRequest
from exif_ai.retry import attempt


MIN_DESCRIPTION_LENGTH = 10
MIN_TAG_COUNT = 2
_MARKDOWN_MARKERS = re.compile(r"[*#>`]")


def is_acceptable_description(description: str | None) -> bool:
    """
    Plain prose longer than a few words, without markdown emphasis, headings, quotes or code.

    Examples:
        >>> is_acceptable_description("A red tent stands in a crowded square.")
        True
        >>> is_acceptable_description("**A red tent** in a square.")
        False

    """
    return (
        isinstance(description, str)
        and len(description.strip()) > MIN_DESCRIPTION_LENGTH
        and not _MARKDOWN_MARKERS.search(description)
    )


def is_acceptable_tags(tags: Sequence[str]) -> bool:
    # A single survivor usually means a refusal or a paragraph collapsed into one blob.
    return len(tags) >= MIN_TAG_COUNT


def clean_description(description: str) -> str:
    return description.strip().replace("\n", "")


async def describe(
    provider: ImageProvider,
    request: ProviderRequest,
    field_keys: Iterable[str],
    *,
    existing: ExistingFields | None = None,
    repeat: int = 0,
) -> dict[str, str]:
    """
    Generate a description and map it onto the description fields.

    Returns an empty mapping when no attempt produced an acceptable description.
    """

    async def call() -> str:
        response = await provider.get_description(request)
        logger.debug("raw_description_received", response=response)
        return response

    description = await attempt(
        call,
        is_acceptable_description,
        repeat,
        label="description_call",
    )
    if description is None:
        logger.debug("no_acceptable_description")
        return {}

    cleaned = clean_description(description)
    logger.debug("description_is", description=cleaned)
    return merge_description(cleaned, field_keys, existing)


async def tag(
    provider: ImageProvider,
    request: ProviderRequest,
    field_keys: Iterable[str],
    *,
    existing: ExistingFields | None = None,
    repeat: int = 0,
    extra_tags: Sequence[str] = (),
) -> dict[str, list[str]]:
    """
    Generate tags, normalize them and map them onto the tag fields.

    `extra_tags` are appended to the generated ones (e.g. names known from elsewhere)
    and are written even when the provider produced nothing usable.
    """

    async def call() -> list[str]:
        response = await provider.get_tags(request)
        logger.debug("raw_tags_received", response=response)
        return format_tags(response)

    tags = await attempt(call, is_acceptable_tags, repeat, label="tags_call")
    if tags is None:
        logger.debug("no_acceptable_tags")
        tags = []

    combined = unique([*tags, *(t.strip() for t in extra_tags if t.strip())])
    logger.debug("tags_are", tags=combined)
    return merge_tags(combined, field_keys, existing)
