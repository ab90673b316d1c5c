"""
Turn free-form model output into a clean, ordered list of tags.

Vision models answer a "give me tags" prompt in many shapes: comma runs in
either ASCII or full-width punctuation, bracketed placeholders such as
``<tag1>``, numbered multi-line lists, or a paragraph of prose with a few
usable phrases inside. Two branches cover these:

- numbered list: more than one line starts with a digit, every such line is a tag;
- inline: everything after the last colon is split on the dominant comma
  (or newline), and pieces with more than one whitespace character are
  treated as prose and dropped.

The whitespace filter also rejects legitimate three-word tags. It is a
precision/recall trade-off that favours not writing sentence fragments into
keyword fields.
"""

import re
from collections.abc import Iterable, Sequence

from loguru import logger


RawTags = str | Sequence[str] | None

_LINE_BREAKS = re.compile(r"[\n\r]+")
_NUMBERED_LINE = re.compile(r"^\d+")
_PLACEHOLDER = re.compile(r"tag\d+")
_NOISE = re.compile(r"[\[\].{}<>/*'\"()。]")
_COLONS = re.compile(r"[：:]")
_LEADING_NUMBER = re.compile(r"^\d+\s+")
_TRAILING_NEWLINE = re.compile(r"\n$")
_WHITESPACE = re.compile(r"\s")
_WHITESPACE_RUN = re.compile(r"\s+")

FULL_WIDTH_COLON = "："
FULL_WIDTH_COMMA = "，"
MAX_TAG_WHITESPACE = 1


def unique(values: Iterable[str]) -> list[str]:
    """
    Drop repeated values, keeping the first occurrence and its position.

    Examples:
        >>> unique(["sky", "sea", "sky"])
        ['sky', 'sea']

    """
    return list(dict.fromkeys(values))


def _strip_noise(text: str) -> str:
    return _NOISE.sub("", _PLACEHOLDER.sub("", text))


def _item_separator(text: str) -> str:
    if FULL_WIDTH_COMMA in text:
        return FULL_WIDTH_COMMA
    if "," in text:
        return ","
    return "\n"


def _is_tag_like(piece: str) -> bool:
    return (
        len(piece) > 0
        and piece != "\n"
        and len(_WHITESPACE.findall(piece)) <= MAX_TAG_WHITESPACE
    )


def _from_numbered_lines(lines: list[str]) -> list[str]:
    tags = []
    for line in lines:
        cleaned = _strip_noise(line)
        cleaned = _NUMBERED_LINE.sub("", cleaned, count=1)
        cleaned = _COLONS.sub("", cleaned).strip()
        cleaned = _WHITESPACE_RUN.sub(" ", cleaned)
        if cleaned:
            tags.append(cleaned)
    return tags


def _from_inline(text: str) -> list[str]:
    cleaned = _strip_noise(text)
    field_separator = FULL_WIDTH_COLON if FULL_WIDTH_COLON in cleaned else ":"
    # Everything up to the last colon is preamble ("Here are the tags:").
    payload = cleaned.split(field_separator)[-1]

    tags = []
    for piece in payload.split(_item_separator(payload)):
        candidate = piece.strip()
        candidate = _TRAILING_NEWLINE.sub("", candidate)
        candidate = _LEADING_NUMBER.sub("", candidate)
        candidate = _COLONS.sub("", candidate)
        if _is_tag_like(candidate):
            tags.append(candidate)
    return tags


def format_tags(raw: RawTags) -> list[str]:
    """
    Normalize a provider response into unique tags in source order.

    Sequences are trusted as already normalized and returned unchanged (as a list).

    Examples:
        >>> format_tags("ids, names, locations")
        ['ids', 'names', 'locations']
        >>> format_tags("<人群>, <红色帐篷>")
        ['人群', '红色帐篷']
        >>> format_tags("Tags:\\n1. sky\\n2. sea")
        ['sky', 'sea']
        >>> format_tags(None)
        []

    """
    if raw is None:
        return []
    if not isinstance(raw, str):
        return list(raw)

    lines = _LINE_BREAKS.split(raw)
    numbered = [line for line in lines if _NUMBERED_LINE.match(line)]
    if len(numbered) > 1:
        tags = _from_numbered_lines(numbered)
        branch = "numbered"
    else:
        tags = _from_inline(raw)
        branch = "inline"

    result = unique(tags)
    logger.debug("tags_normalized", branch=branch, count=len(result), tags=result)
    return result
