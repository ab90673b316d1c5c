#!/usr/bin/env python3
"""
Exif AI: CLI app to write AI-generated descriptions and tags into image metadata.

The image is sent to a vision-language model (OpenAI, Gemini, Claude, Mistral, Ollama,
LM Studio and other OpenAI-compatible hosts). The free-text answers are cleaned into a
description and a list of tags, merged with what the file already carries, and written
with ExifTool in a single call per image.

Requirements:
 - Exiftool installed and available in PATH.
 - An API key in the environment for hosted providers (OPENAI_API_KEY, GOOGLE_API_KEY, ...)
   or a local Ollama / LM Studio server.

"""
# ruff: noqa: PLR0913

import asyncio
import contextlib
import sys
from datetime import UTC, datetime
from itertools import chain
from pathlib import Path
from typing import Annotated

from cyclopts import App, Parameter, validators
from loguru import logger

from exif_ai.config import (
    DEFAULT_CONCURRENCY,
    DEFAULT_DESCRIPTION_PROMPT,
    DEFAULT_DESCRIPTION_TAGS,
    DEFAULT_HTTP_TIMEOUT,
    DEFAULT_PROXY,
    DEFAULT_TAG_PROMPT,
    DEFAULT_TAG_TAGS,
    DEFAULT_TASKS,
    DESCRIPTION_KEYS,
    TAG_KEYS,
    ExecuteOptions,
    HttpClientConfig,
    LogLevel,
    TaskType,
)
from exif_ai.errors import ProviderError
from exif_ai.orchestrator import BatchSummary, execute_batch
from exif_ai.providers import get_provider


__version__ = "4.0.0"
app = App(
    name="exif-ai",
    version=__version__,
)


def setup_logging(
    file_log_level: LogLevel = "DEBUG",
    console_log_level: LogLevel = "ERROR",
    log_folder: Path = Path("logs"),
) -> None:
    """
    Configure Loguru for both console and file logging.

    Args:
        file_log_level: Log level for file (use 'OFF' to disable)
        console_log_level: Log level for console (use 'OFF' to disable)
        log_folder: Directory where log files are stored

    """
    # Remove default handler
    logger.remove()

    if file_log_level != "OFF":
        log_folder.mkdir(parents=True, exist_ok=True)
        log_file = log_folder / Path(
            datetime.now(tz=UTC).strftime("%Y%m%d%H%M%S-exif_ai.log"),
        )
        logger.add(
            log_file,
            level=file_log_level,
            format=(
                "{time:YYYY-MM-DD HH:mm:ss.SSS} | "
                "{level: <8} | "
                "{name:<8}:{function:<25}:{line:>4} | "
                "{message:<40} | "
                "{extra}"
            ),
            rotation="500 MB",
            retention="10 days",
            compression="zip",
        )

    if console_log_level != "OFF":
        logger.add(
            sys.stderr,
            level=console_log_level,
            colorize=True,
            format=(
                "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | "
                "<level>{level: <7}</level> | "
                "<level>{message:<40.50}</level> | "
                "<yellow>{extra}</yellow>"
            ),
        )


def _parse_extensions(image_extensions: str) -> set[str]:
    """
    Normalize comma-separated extensions into a set like {".jpg", ".heic"}.

    Examples:
        >>> _parse_extensions("jpg, heic ,PNG")
        {'.jpg', '.heic', '.PNG'}

    """
    return {
        f".{ext.strip().lstrip('.')}"
        for ext in image_extensions.split(",")
        if ext.strip().lstrip(".")
    }


def _resolve_image_files(
    inputs: list[Path],
    ext_set: set[str],
    *,
    recursive: bool,
) -> list[Path]:
    """
    Resolve provided inputs into a list of files.

    - Directories are expanded by extension (honoring --recursive)
    - Explicit files are accepted as-is (extension filter not applied)
    - Order is preserved and duplicates removed
    """
    pattern = "**/*" if recursive else "*"

    files_from_dirs: list[Path] = []
    files_explicit: list[Path] = []

    for path in inputs:
        path_resolved = path
        with contextlib.suppress(OSError, RuntimeError):
            path_resolved = path.resolve()
        if path_resolved.is_dir():
            for ext in sorted(ext_set):
                files_from_dirs.extend(sorted(path_resolved.glob(f"{pattern}{ext}")))
        elif path_resolved.is_file():
            files_explicit.append(path_resolved)
        else:
            logger.warning("input_not_file_or_dir", path=str(path))

    combined: list[Path] = []
    seen = set()
    for f in chain(files_explicit, files_from_dirs):
        key = str(f.resolve()) if f.exists() else str(f)
        if key not in seen:
            combined.append(f)
            seen.add(key)

    return combined


def _select_field_keys(
    requested: list[str] | None,
    allowed: frozenset[str],
    defaults: tuple[str, ...],
    *,
    kind: str,
) -> list[str]:
    """
    Keep requested field keys that belong to the allowed domain; fall back to defaults.

    Examples:
        >>> _select_field_keys(None, frozenset({"Subject"}), ("Subject",), kind="tag")
        ['Subject']

    """
    if requested is None:
        return list(defaults)
    selected = [key for key in dict.fromkeys(requested) if key in allowed]
    if dropped := [key for key in requested if key not in allowed]:
        logger.warning("unknown_field_keys_dropped", kind=kind, keys=dropped)
    return selected


async def _run_batch(
    image_files: list[Path],
    options: ExecuteOptions,
    *,
    concurrency: int,
    http_config: HttpClientConfig,
) -> BatchSummary:
    async with http_config.build_client() as http_client:
        provider = get_provider(options.provider, model=options.model, http_client=http_client)
        return await execute_batch(
            image_files,
            options,
            concurrency=concurrency,
            provider=provider,
        )


@app.default
def run(
    inputs: Annotated[
        list[Path] | None,
        Parameter(
            name=("--input", "-i"),
            validator=validators.Path(exists=True),
            help="One or more paths: files and/or directories (repeat this option)",
        ),
    ] = None,
    *,
    provider: Annotated[
        str,
        Parameter(
            name=("--provider", "-p"),
            help="AI provider: openai, google, anthropic, mistral, ollama, lmstudio, ...",
        ),
    ] = "ollama",
    model: Annotated[
        str | None,
        Parameter(
            name=("--model", "-m"),
            help="AI model to use (uses the provider default if not specified)",
        ),
    ] = None,
    tasks: Annotated[
        list[TaskType] | None,
        Parameter(
            name=("--tasks", "-t"),
            help="Tasks to perform: description, tag (repeat this option)",
        ),
    ] = None,
    description_prompt: Annotated[
        str,
        Parameter(name=("--description-prompt",), help="Prompt used to generate descriptions"),
    ] = DEFAULT_DESCRIPTION_PROMPT,
    tag_prompt: Annotated[
        str,
        Parameter(name=("--tag-prompt",), help="Prompt used to generate tags"),
    ] = DEFAULT_TAG_PROMPT,
    description_tags: Annotated[
        list[str] | None,
        Parameter(
            name=("--description-tags",),
            help="Metadata fields for descriptions "
            "(default: XPComment, Description, ImageDescription, Caption-Abstract)",
        ),
    ] = None,
    tag_tags: Annotated[
        list[str] | None,
        Parameter(
            name=("--tag-tags",),
            help="Metadata fields for tags (default: Subject, TagsList, Keywords)",
        ),
    ] = None,
    extra_tags: Annotated[
        list[str] | None,
        Parameter(name=("--extra-tag",), help="Tag added to every image (repeat this option)"),
    ] = None,
    image_extensions: Annotated[
        str,
        Parameter(
            name=("--ext", "--extensions"),
            help="Comma-separated image file extensions to process in directories",
        ),
    ] = "jpg,jpeg,JPG,JPEG",
    recursive: Annotated[
        bool,
        Parameter(
            name=("--recursive", "-r"),
            help="Process files in subdirectories recursively",
        ),
    ] = False,
    dry_run: Annotated[
        bool,
        Parameter(
            name=("--dry-run", "-d", "--preview"),
            help="Print AI-generated content without writing to the files",
        ),
    ] = False,
    verbose: Annotated[
        bool,
        Parameter(name=("--verbose", "-v"), help="Show prompts, responses and parsed results"),
    ] = False,
    skip_existing: Annotated[
        bool,
        Parameter(
            name=("--skip-existing", "--avoid-overwrite"),
            help="Keep fields that already hold a value; merge tags with existing ones",
        ),
    ] = False,
    retry: Annotated[
        int,
        Parameter(
            name=("--retry",),
            validator=validators.Number(gte=0),
            help="Extra attempts when the model output is unusable",
        ),
    ] = 0,
    exif_args: Annotated[
        list[str] | None,
        Parameter(
            name=("--exif-args",),
            help="Additional ExifTool write arguments, e.g. -overwrite_original",
            allow_leading_hyphen=True,
        ),
    ] = None,
    provider_args: Annotated[
        list[str] | None,
        Parameter(
            name=("--provider-args",),
            help="Model settings as key=value, e.g. temperature=0.5",
        ),
    ] = None,
    concurrency: Annotated[
        int,
        Parameter(
            name=("--concurrency", "-c"),
            validator=validators.Number(gte=1),
            help="Images processed at the same time",
        ),
    ] = DEFAULT_CONCURRENCY,
    proxy: Annotated[
        str | None,
        Parameter(name=("--proxy",), help="HTTP(S) proxy URL for provider requests"),
    ] = DEFAULT_PROXY,
    timeout: Annotated[
        float,
        Parameter(name=("--timeout",), help="Provider request timeout in seconds"),
    ] = DEFAULT_HTTP_TIMEOUT,
    file_log_level: Annotated[
        LogLevel,
        Parameter(
            name="--file-log-level",
            help="Log level for file (use 'OFF' to disable)",
        ),
    ] = "OFF",
    log_folder: Annotated[
        Path,
        Parameter(
            name=("--log-folder",),
            help="Folder where log files are stored",
        ),
    ] = Path("logs"),
) -> None:
    """
    Generate AI descriptions and tags for images and write them to metadata.

    Inputs:
    - One or more --input/-i paths (files and/or directories; repeatable).
    - Files are processed as is. Directories use --ext (add --recursive for subfolders).

    Behavior:
    - Description and tag generation run concurrently for each image.
    - --retry N asks the model up to N more times when the answer is unusable.
    - --skip-existing keeps filled description fields and merges tags with existing ones.
    - --dry-run prints the fields as JSON instead of writing them.

    Exit status: returns 1 if no inputs, the provider cannot be set up, or any file fails.

    Examples:
        exif-ai -i photo.jpg -p ollama
        exif-ai -i ./photos -r -p openai -m gpt-4o --retry 2
        exif-ai -i photo.jpg -p google -t description --dry-run

    """
    setup_logging(
        file_log_level=file_log_level,
        console_log_level="DEBUG" if verbose else "ERROR",
        log_folder=log_folder,
    )
    logger.debug(
        "starting_exif_ai",
        inputs=[str(p) for p in (inputs or [])],
        provider=provider,
        model=model,
        tasks=tasks,
        dry_run=dry_run,
        skip_existing=skip_existing,
        retry=retry,
        concurrency=concurrency,
    )

    if not inputs:
        logger.error("no_inputs_provided", hint="Pass one or more --input/-i paths")
        raise SystemExit(1)

    ext_set = _parse_extensions(image_extensions)
    image_files = _resolve_image_files(inputs, ext_set, recursive=recursive)
    if not image_files:
        logger.error(
            "no_image_files_found",
            inputs=[str(p) for p in inputs],
            recursive=recursive,
            extensions=sorted(ext_set),
        )
        raise SystemExit(1)
    logger.info("image_files_discovered", count=len(image_files))

    options = ExecuteOptions(
        provider=provider,
        model=model,
        tasks=tasks if tasks is not None else list(DEFAULT_TASKS),
        description_prompt=description_prompt,
        tag_prompt=tag_prompt,
        description_tags=_select_field_keys(
            description_tags,
            DESCRIPTION_KEYS,
            DEFAULT_DESCRIPTION_TAGS,
            kind="description",
        ),
        tag_tags=_select_field_keys(tag_tags, TAG_KEYS, DEFAULT_TAG_TAGS, kind="tag"),
        extra_tags=extra_tags or [],
        dry_run=dry_run,
        avoid_overwrite=skip_existing,
        repeat=retry,
        write_args=exif_args or [],
        provider_args=provider_args or [],
    )

    try:
        summary = asyncio.run(
            _run_batch(
                image_files,
                options,
                concurrency=concurrency,
                http_config=HttpClientConfig(proxy=proxy, timeout=timeout),
            ),
        )
    except ProviderError as exc:
        logger.exception("provider_setup_failed", provider=provider, error=str(exc))
        raise SystemExit(1) from exc
    except Exception as exc:  # noqa: BLE001
        logger.exception("run_failed", error=str(exc))
        raise SystemExit(1) from exc

    if not summary.ok:
        raise SystemExit(1)


if __name__ == "__main__":
    app()
