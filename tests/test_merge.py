"""Tests for combining generated values with existing metadata."""

from exif_ai.merge import merge_description, merge_tags


TAG_FIELDS = ("Subject", "Keywords")
DESCRIPTION_FIELDS = ("XPComment", "Description", "ImageDescription", "Caption-Abstract")


def test_merge_tags_appends_to_existing_lists() -> None:
    """Existing list values come first, new tags follow in order."""
    existing = {"Subject": ["existingSubject"], "Keywords": ["existingKeywords"]}

    merged = merge_tags(["tag1", "tag2"], TAG_FIELDS, existing)

    assert merged == {
        "Subject": ["existingSubject", "tag1", "tag2"],
        "Keywords": ["existingKeywords", "tag1", "tag2"],
    }


def test_merge_tags_collapses_duplicates_keeping_first() -> None:
    existing = {"Subject": ["sky", "sea"]}

    merged = merge_tags(["sea", "sand", "sky"], ["Subject"], existing)

    assert merged == {"Subject": ["sky", "sea", "sand"]}


def test_merge_tags_single_string_goes_last() -> None:
    """A single-valued field is trimmed and kept after the new tags."""
    merged = merge_tags(["tag1", "tag2"], TAG_FIELDS, {"Keywords": "  existingSubject "})

    assert merged == {
        "Subject": ["tag1", "tag2"],
        "Keywords": ["tag1", "tag2", "existingSubject"],
    }


def test_merge_tags_blank_string_adds_nothing() -> None:
    assert merge_tags(["a", "b"], ["Keywords"], {"Keywords": "   "}) == {"Keywords": ["a", "b"]}


def test_merge_tags_overwrite_mode_ignores_existing() -> None:
    """Without `existing` every field receives exactly the new tags."""
    assert merge_tags(["tag1", "tag2"], TAG_FIELDS) == {
        "Subject": ["tag1", "tag2"],
        "Keywords": ["tag1", "tag2"],
    }


def test_merge_tags_empty_inputs_produce_no_keys() -> None:
    assert merge_tags([], TAG_FIELDS) == {}
    assert merge_tags([], TAG_FIELDS, {"Subject": ["old"]}) == {}
    assert merge_tags(["tag1"], []) == {}


def test_merge_tags_repeated_application_is_stable() -> None:
    """Merging the same tags again into the merged result adds nothing new."""
    existing = {"Subject": ["existingSubject"]}
    first = merge_tags(["tag1", "tag2"], ["Subject"], existing)
    second = merge_tags(["tag1", "tag2"], ["Subject"], first)

    assert second == first


def test_merge_tags_does_not_mutate_inputs() -> None:
    existing = {"Subject": ["old"]}
    new_tags = ["new"]

    merge_tags(new_tags, ["Subject"], existing)

    assert existing == {"Subject": ["old"]}
    assert new_tags == ["new"]


def test_merge_description_overwrite_mode() -> None:
    merged = merge_description("A calm lake at dawn.", DESCRIPTION_FIELDS)

    assert merged == dict.fromkeys(DESCRIPTION_FIELDS, "A calm lake at dawn.")


def test_merge_description_never_alters_filled_fields() -> None:
    """Blank and absent fields are filled, fields with text are left alone."""
    existing = {"XPComment": "Existing comment", "Description": "   ", "ImageDescription": ""}

    merged = merge_description("A calm lake at dawn.", DESCRIPTION_FIELDS, existing)

    assert merged == {
        "Description": "A calm lake at dawn.",
        "ImageDescription": "A calm lake at dawn.",
        "Caption-Abstract": "A calm lake at dawn.",
    }


def test_merge_description_all_fields_filled() -> None:
    existing = dict.fromkeys(DESCRIPTION_FIELDS, "Written by hand")

    assert merge_description("Anything new", DESCRIPTION_FIELDS, existing) == {}


def test_merge_description_without_description() -> None:
    assert merge_description(None, DESCRIPTION_FIELDS) == {}
    assert merge_description("", DESCRIPTION_FIELDS, {}) == {}
