"""Tests for the command line helpers and the `run` command wiring."""

from collections.abc import Iterator
from pathlib import Path
from typing import Any

import pytest
from loguru import logger

import exif_ai.main as m
from exif_ai.config import DEFAULT_TAG_TAGS, TAG_KEYS, ExecuteOptions, HttpClientConfig
from exif_ai.orchestrator import BatchSummary


def test_parse_extensions_normalizes_input() -> None:
    """Comma-separated extensions are normalized with leading dots preserved."""
    extensions = m._parse_extensions("cr3, .jpg ,PNG,,")  # noqa: SLF001
    assert extensions == {".cr3", ".jpg", ".PNG"}


def test_resolve_image_files_deduplicates_and_preserves_explicit(tmp_path: Path) -> None:
    """Explicit paths stay first and duplicates discovered via directories are filtered out."""
    folder = tmp_path / "images"
    folder.mkdir()

    explicit = folder / "explicit.cr3"
    explicit.write_text("data")
    duplicate = folder / "shared.jpg"
    duplicate.write_text("data")
    extra = folder / "other.jpg"
    extra.write_text("data")

    result = m._resolve_image_files(  # noqa: SLF001
        [explicit, folder],
        ext_set={".cr3", ".jpg"},
        recursive=False,
    )

    explicit_resolved = explicit.resolve()
    assert result[0] == explicit_resolved
    assert set(result) == {explicit_resolved, duplicate.resolve(), extra.resolve()}
    assert result.count(explicit_resolved) == 1


def test_resolve_image_files_recursive_only_when_asked(tmp_path: Path) -> None:
    nested = tmp_path / "a" / "b"
    nested.mkdir(parents=True)
    (tmp_path / "top.jpg").write_text("data")
    (nested / "deep.jpg").write_text("data")
    (nested / "skip.txt").write_text("data")

    flat = m._resolve_image_files([tmp_path], {".jpg"}, recursive=False)  # noqa: SLF001
    deep = m._resolve_image_files([tmp_path], {".jpg"}, recursive=True)  # noqa: SLF001

    assert [p.name for p in flat] == ["top.jpg"]
    assert sorted(p.name for p in deep) == ["deep.jpg", "top.jpg"]


def test_select_field_keys_filters_unknown_keys() -> None:
    selected = m._select_field_keys(  # noqa: SLF001
        ["Keywords", "Bogus", "Subject", "Keywords"],
        TAG_KEYS,
        DEFAULT_TAG_TAGS,
        kind="tag",
    )

    assert selected == ["Keywords", "Subject"]


def test_select_field_keys_defaults_when_not_requested() -> None:
    selected = m._select_field_keys(None, TAG_KEYS, DEFAULT_TAG_TAGS, kind="tag")  # noqa: SLF001

    assert selected == list(DEFAULT_TAG_TAGS)


@pytest.fixture
def recorded_batches(monkeypatch: pytest.MonkeyPatch) -> list[dict[str, Any]]:
    """Replace the async batch runner and record what `run` hands to it."""
    calls: list[dict[str, Any]] = []

    async def fake_run_batch(
        image_files: list[Path],
        options: ExecuteOptions,
        *,
        concurrency: int,
        http_config: HttpClientConfig,
    ) -> BatchSummary:
        calls.append(
            {
                "files": image_files,
                "options": options,
                "concurrency": concurrency,
                "http_config": http_config,
            },
        )
        return BatchSummary(total=len(image_files), successful=len(image_files))

    monkeypatch.setattr(m, "_run_batch", fake_run_batch)
    return calls


def test_run_builds_options_from_flags(
    tmp_path: Path,
    recorded_batches: list[dict[str, Any]],
) -> None:
    image = tmp_path / "photo.jpg"
    image.write_text("data")

    m.run(
        [image],
        provider="openai",
        model="gpt-4o",
        tasks=["tag"],
        tag_tags=["Keywords", "NotAField"],
        extra_tags=["Alice"],
        skip_existing=True,
        retry=2,
        exif_args=["-overwrite_original"],
        provider_args=["temperature=0.5"],
        concurrency=3,
        proxy="http://proxy.local:3128",
        timeout=30.0,
    )

    assert len(recorded_batches) == 1
    call = recorded_batches[0]
    options: ExecuteOptions = call["options"]
    assert call["files"] == [image.resolve()]
    assert call["concurrency"] == 3
    assert call["http_config"].proxy == "http://proxy.local:3128"
    assert call["http_config"].timeout == pytest.approx(30.0)
    assert options.provider == "openai"
    assert options.model == "gpt-4o"
    assert options.tasks == ["tag"]
    assert options.tag_tags == ["Keywords"]
    assert options.extra_tags == ["Alice"]
    assert options.avoid_overwrite
    assert options.repeat == 2
    assert options.write_args == ["-overwrite_original"]
    assert options.provider_args == ["temperature=0.5"]
    assert not options.dry_run


def test_run_without_inputs_exits_with_error(recorded_batches: list[dict[str, Any]]) -> None:
    with pytest.raises(SystemExit) as excinfo:
        m.run(None)

    assert excinfo.value.code == 1
    assert recorded_batches == []


def test_run_with_no_matching_files_exits_with_error(
    tmp_path: Path,
    recorded_batches: list[dict[str, Any]],
) -> None:
    (tmp_path / "notes.txt").write_text("data")

    with pytest.raises(SystemExit) as excinfo:
        m.run([tmp_path])

    assert excinfo.value.code == 1
    assert recorded_batches == []


def test_run_exits_with_error_when_any_file_fails(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
) -> None:
    image = tmp_path / "photo.jpg"
    image.write_text("data")

    async def failing_batch(image_files: list[Path], *_: object, **__: object) -> BatchSummary:
        return BatchSummary(total=1, successful=0, failed=list(image_files))

    monkeypatch.setattr(m, "_run_batch", failing_batch)

    with pytest.raises(SystemExit) as excinfo:
        m.run([image])

    assert excinfo.value.code == 1


def test_run_exits_with_error_when_provider_setup_fails(tmp_path: Path) -> None:
    image = tmp_path / "photo.jpg"
    image.write_text("data")

    with pytest.raises(SystemExit) as excinfo:
        m.run([image], provider="no-such-provider")

    assert excinfo.value.code == 1


@pytest.fixture
def log_events(monkeypatch: pytest.MonkeyPatch) -> Iterator[list[str]]:
    """Keep `run` from reconfiguring loguru and collect the emitted event names."""
    events: list[str] = []
    monkeypatch.setattr(m, "setup_logging", lambda **_: None)
    handler_id = logger.add(lambda message: events.append(message.record["message"]))
    yield events
    logger.remove(handler_id)


def test_run_reports_unexpected_failures_separately(
    tmp_path: Path,
    monkeypatch: pytest.MonkeyPatch,
    log_events: list[str],
) -> None:
    image = tmp_path / "photo.jpg"
    image.write_text("data")

    async def broken_batch(*_: object, **__: object) -> BatchSummary:
        msg = "disk full"
        raise OSError(msg)

    monkeypatch.setattr(m, "_run_batch", broken_batch)

    with pytest.raises(SystemExit) as excinfo:
        m.run([image])

    assert excinfo.value.code == 1
    assert "run_failed" in log_events
    assert "provider_setup_failed" not in log_events


def test_run_reports_provider_setup_failures(tmp_path: Path, log_events: list[str]) -> None:
    image = tmp_path / "photo.jpg"
    image.write_text("data")

    with pytest.raises(SystemExit):
        m.run([image], provider="no-such-provider")

    assert "provider_setup_failed" in log_events
    assert "run_failed" not in log_events
