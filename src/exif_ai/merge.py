"""Combine generated descriptions and tags with metadata already present on the image."""

from collections.abc import Iterable, Mapping, Sequence

from loguru import logger

from exif_ai.normalize import unique


ExistingValue = str | Sequence[str] | None
ExistingFields = Mapping[str, ExistingValue]


def _combine_tags(new_tags: list[str], current: ExistingValue) -> list[str]:
    """
    Merge one field's current value with the new tags.

    Examples:
        >>> _combine_tags(["a", "b"], ["b", "c"])
        ['b', 'c', 'a']
        >>> _combine_tags(["a", "b"], " c ")
        ['a', 'b', 'c']

    """
    if current is None:
        return list(new_tags)
    if isinstance(current, str):
        # A single-valued field keeps its value after the new tags.
        stripped = current.strip()
        return unique([*new_tags, stripped] if stripped else new_tags)
    return unique([*(str(item) for item in current), *new_tags])


def merge_tags(
    new_tags: Sequence[str],
    field_keys: Iterable[str],
    existing: ExistingFields | None = None,
) -> dict[str, list[str]]:
    """
    Map each tag field to its final list of tags.

    Args:
        new_tags: Normalized tags from the provider (plus any extra tags)
        field_keys: Tag fields to fill, e.g. Subject, Keywords
        existing: Current metadata values. None means overwrite mode: existing values
                  are ignored and every field receives exactly `new_tags`.

    Returns:
        Field to tag list mapping. Empty when there is nothing new to write.

    Examples:
        >>> merge_tags(["tag1", "tag2"], ["Subject"], {"Subject": ["existingSubject"]})
        {'Subject': ['existingSubject', 'tag1', 'tag2']}

    """
    tags = list(new_tags)
    if not tags:
        return {}

    if existing is None:
        return {key: list(tags) for key in field_keys}

    merged = {key: _combine_tags(tags, existing.get(key)) for key in field_keys}
    logger.debug("tags_merged", fields=list(merged), new_count=len(tags))
    return merged


def _is_blank(value: ExistingValue) -> bool:
    if value is None:
        return True
    if isinstance(value, str):
        return not value.strip()
    return not any(str(item).strip() for item in value)


def merge_description(
    description: str | None,
    field_keys: Iterable[str],
    existing: ExistingFields | None = None,
) -> dict[str, str]:
    """
    Map each description field to the new description, never touching filled fields.

    A field missing from `existing` counts as blank and is written.

    Examples:
        >>> merge_description("A calm lake.", ["XPComment", "Description"], {"XPComment": "Mine"})
        {'Description': 'A calm lake.'}

    """
    if not description:
        return {}

    if existing is None:
        return {key: description for key in field_keys}

    merged: dict[str, str] = {}
    for key in field_keys:
        if _is_blank(existing.get(key)):
            merged[key] = description
        else:
            logger.debug("description_field_kept", field=key)
    return merged
