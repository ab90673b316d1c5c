"""Tests for the ExifTool-backed metadata store, with pyexiftool replaced by a recorder."""

from pathlib import Path
from typing import Any

import pytest
from exiftool.exceptions import ExifToolExecuteError

import exif_ai.metadata as m
from exif_ai.errors import MetadataError


class RecordingExifTool:
    """Stands in for `ExifToolHelper`, recording calls on the class for inspection."""

    blocks: list[dict[str, Any]] = []
    error: Exception | None = None
    get_calls: list[dict[str, Any]] = []
    set_calls: list[dict[str, Any]] = []

    def __enter__(self) -> "RecordingExifTool":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def get_tags(self, files: list[str], tags: list[str]) -> list[dict[str, Any]]:
        type(self).get_calls.append({"files": files, "tags": tags})
        if self.error is not None:
            raise self.error
        return self.blocks

    def set_tags(self, files: list[str], tags: dict[str, Any], params: list[str]) -> None:
        type(self).set_calls.append({"files": files, "tags": tags, "params": params})
        if self.error is not None:
            raise self.error


@pytest.fixture
def exiftool(monkeypatch: pytest.MonkeyPatch) -> type[RecordingExifTool]:
    RecordingExifTool.blocks = []
    RecordingExifTool.error = None
    RecordingExifTool.get_calls = []
    RecordingExifTool.set_calls = []
    monkeypatch.setattr(m, "ExifToolHelper", RecordingExifTool)
    return RecordingExifTool


def test_read_strips_group_prefix_and_first_group_wins(
    exiftool: type[RecordingExifTool],
    tmp_path: Path,
) -> None:
    exiftool.blocks = [
        {
            "SourceFile": str(tmp_path / "a.jpg"),
            "EXIF:XPComment": "From EXIF",
            "XMP:Description": "From XMP",
            "IPTC:Keywords": [2024, "Beach"],
            "XMP:Subject": "Beach",
            "IPTC:Description": "Later group",
        },
    ]

    result = m.ExifToolStore().read(
        tmp_path / "a.jpg",
        ["XPComment", "Description", "Keywords", "Subject", "Keywords"],
    )

    assert result == {
        "XPComment": "From EXIF",
        "Description": "From XMP",
        "Keywords": ["2024", "Beach"],
        "Subject": "Beach",
    }
    assert exiftool.get_calls == [
        {
            "files": [str(tmp_path / "a.jpg")],
            "tags": ["XPComment", "Description", "Keywords", "Subject"],
        },
    ]


def test_read_with_no_keys_skips_exiftool(exiftool: type[RecordingExifTool]) -> None:
    assert m.ExifToolStore().read(Path("a.jpg"), []) == {}
    assert exiftool.get_calls == []


def test_write_sends_all_fields_in_one_call(
    exiftool: type[RecordingExifTool],
    tmp_path: Path,
) -> None:
    fields = {"Description": "A calm lake.", "Subject": ["lake", "dawn"]}

    m.ExifToolStore().write(tmp_path / "a.jpg", fields, write_args=["-overwrite_original"])

    assert exiftool.set_calls == [
        {
            "files": [str(tmp_path / "a.jpg")],
            "tags": fields,
            "params": ["-overwrite_original"],
        },
    ]


def test_write_with_no_fields_is_a_no_op(exiftool: type[RecordingExifTool]) -> None:
    m.ExifToolStore().write(Path("a.jpg"), {})

    assert exiftool.set_calls == []


@pytest.mark.parametrize("operation", ["read", "write"])
def test_exiftool_failures_become_metadata_errors(
    exiftool: type[RecordingExifTool],
    operation: str,
) -> None:
    exiftool.error = ExifToolExecuteError(1, "", "Error: File not found", ["-j"])
    store = m.ExifToolStore()

    with pytest.raises(MetadataError, match="missing.jpg"):
        if operation == "read":
            store.read(Path("missing.jpg"), ["Subject"])
        else:
            store.write(Path("missing.jpg"), {"Subject": ["x"]})
