"""Metadata reader/writer backed by ExifTool (through pyexiftool)."""

from collections.abc import Iterable, Mapping
from pathlib import Path
from typing import Any, Protocol

from exiftool import ExifToolHelper  # type: ignore[attr-defined]
from exiftool.exceptions import ExifToolExecuteError
from loguru import logger

from exif_ai.errors import MetadataError


FieldValue = str | list[str]


class MetadataStore(Protocol):
    def read(self, image_path: Path, keys: Iterable[str]) -> dict[str, FieldValue]: ...

    def write(
        self,
        image_path: Path,
        fields: Mapping[str, FieldValue],
        *,
        write_args: list[str] | None = None,
    ) -> None: ...


def _coerce_value(value: Any) -> FieldValue:  # noqa: ANN401
    """
    Convert ExifTool JSON values to strings; ExifTool returns numbers for numeric keywords.

    Examples:
        >>> _coerce_value([2024, "Beach"])
        ['2024', 'Beach']
        >>> _coerce_value(3.5)
        '3.5'

    """
    if isinstance(value, (list, tuple, set)):
        return [str(item) for item in value]
    return str(value)


def _bare_key(exif_key: str) -> str:
    """
    Strip the group prefix ExifTool adds with -G.

    Examples:
        >>> _bare_key("EXIF:XPComment")
        'XPComment'

    """
    return exif_key.rsplit(":", 1)[-1]


class ExifToolStore:
    """Reads and writes named tags with a short-lived ExifTool process per call."""

    def read(self, image_path: Path, keys: Iterable[str]) -> dict[str, FieldValue]:
        """
        Read the requested tags from the image.

        Returns:
            Mapping of bare tag name to its value. Tags the file does not carry are absent.
            When a tag exists in several groups (EXIF, IPTC, XMP) the first one wins.

        Raises:
            MetadataError: ExifTool could not read the file.

        """
        wanted = list(dict.fromkeys(keys))
        if not wanted:
            return {}
        try:
            with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
                blocks = et.get_tags(files=[str(image_path)], tags=wanted)
        except (ValueError, TypeError, ExifToolExecuteError) as e:
            msg = f"Failed to read metadata from {image_path}: {e}"
            raise MetadataError(msg) from e

        wanted_set = set(wanted)
        result: dict[str, FieldValue] = {}
        for block in blocks:
            for exif_key, raw_value in block.items():
                key = _bare_key(exif_key)
                if key in wanted_set and key not in result and raw_value is not None:
                    result[key] = _coerce_value(raw_value)

        logger.debug("existing_metadata_read", fields=sorted(result))
        return result

    def write(
        self,
        image_path: Path,
        fields: Mapping[str, FieldValue],
        *,
        write_args: list[str] | None = None,
    ) -> None:
        """
        Write every field in one ExifTool call.

        ExifTool keeps an `_original` backup unless `write_args` contains -overwrite_original.

        Raises:
            MetadataError: ExifTool rejected the write.

        """
        if not fields:
            logger.warning("no_data_to_write", file=image_path.name)
            return
        try:
            with ExifToolHelper() as et:  # type: ignore[no-untyped-call]
                et.set_tags(
                    files=[str(image_path)],
                    tags=dict(fields),
                    params=list(write_args or []),
                )
        except (ValueError, TypeError, ExifToolExecuteError) as e:
            msg = f"Failed to write metadata to {image_path}: {e}"
            raise MetadataError(msg) from e

        logger.info(
            "metadata_written_successfully",
            target=str(image_path),
            fields=sorted(fields),
            write_args=write_args or [],
        )
