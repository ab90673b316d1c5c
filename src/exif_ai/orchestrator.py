"""Run the description and tag pipelines for images and persist the result."""

import asyncio
import json
import sys
from collections.abc import Awaitable, Iterable, Mapping
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import httpx
from loguru import logger

from exif_ai.config import ExecuteOptions
from exif_ai.image import prepare_image
from exif_ai.merge import ExistingFields
from exif_ai.metadata import ExifToolStore, FieldValue, MetadataStore
from exif_ai.pipelines import describe, tag
from exif_ai.providers import ImageProvider, ProviderRequest, get_provider


@dataclass
class BatchSummary:
    total: int = 0
    successful: int = 0
    failed: list[Path] = field(default_factory=list)

    @property
    def ok(self) -> bool:
        return not self.failed


def _print_preview(image_path: Path, fields: Mapping[str, FieldValue]) -> None:
    payload = {"file": str(image_path), "fields": dict(fields)}
    sys.stdout.write(json.dumps(payload, ensure_ascii=False, indent=2) + "\n")


async def _upload_if_supported(provider: ImageProvider, image_path: Path) -> str | None:
    upload_file = getattr(provider, "upload_file", None)
    if upload_file is None:
        return None
    file_id = await upload_file(image_path)
    logger.debug("file_uploaded", file_id=file_id)
    return file_id


async def execute(
    image_path: Path,
    options: ExecuteOptions,
    *,
    provider: ImageProvider | None = None,
    store: MetadataStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> dict[str, FieldValue]:
    """
    Describe and tag one image, then write all fields in a single metadata call.

    Args:
        image_path: Image to process
        options: Run options (tasks, prompts, fields, overwrite policy, retries)
        provider: Provider to use; resolved from the registry by `options.provider` if None
        store: Metadata reader/writer; ExifTool by default
        http_client: Shared HTTP client handed to registry providers

    Returns:
        The field map that was written (or previewed in dry-run mode).

    Raises:
        MetadataError: reading existing metadata or writing the result failed.
        ProviderError: the provider could not be resolved.

    """
    image_path = image_path.resolve()
    store = store or ExifToolStore()

    if not options.wants_description and not options.wants_tags:
        logger.info("no_tasks_requested")
        return {}

    if provider is None:
        provider = get_provider(options.provider, model=options.model, http_client=http_client)

    existing: ExistingFields | None = None
    if options.avoid_overwrite:
        keys = [*options.description_tags, *options.tag_tags]
        existing = await asyncio.to_thread(store.read, image_path, keys)

    buffer = await asyncio.to_thread(
        prepare_image,
        image_path,
        jpg_quality=options.jpeg_quality,
        max_size=options.jpeg_dimensions,
    )
    file_id = await _upload_if_supported(provider, image_path)

    def request_for(prompt: str) -> ProviderRequest:
        return ProviderRequest(
            buffer=buffer,
            prompt=prompt,
            model=options.model,
            provider_args=list(options.provider_args),
            path=image_path,
            file_id=file_id,
            provider=options.provider,
        )

    jobs: list[Awaitable[Mapping[str, Any]]] = []
    if options.wants_description:
        jobs.append(
            describe(
                provider,
                request_for(options.description_prompt),
                options.description_tags,
                existing=existing,
                repeat=options.repeat,
            ),
        )
    if options.wants_tags:
        jobs.append(
            tag(
                provider,
                request_for(options.tag_prompt),
                options.tag_tags,
                existing=existing,
                repeat=options.repeat,
                extra_tags=options.extra_tags,
            ),
        )

    fields: dict[str, FieldValue] = {}
    for result in await asyncio.gather(*jobs):
        fields.update(result)

    if options.dry_run:
        _print_preview(image_path, fields)
        logger.info("dry_run_nothing_written", fields=sorted(fields))
        return fields

    if not fields:
        logger.warning("no_data_to_write", file=image_path.name)
        return fields

    await asyncio.to_thread(store.write, image_path, fields, write_args=options.write_args)
    return fields


async def _execute_logged(
    image_path: Path,
    options: ExecuteOptions,
    *,
    index: str,
    semaphore: asyncio.Semaphore,
    provider: ImageProvider,
    store: MetadataStore | None,
) -> bool:
    """Run `execute` once with consistent logging and error handling."""
    async with semaphore:
        with logger.contextualize(file=image_path.name):
            try:
                fields = await execute(image_path, options, provider=provider, store=store)
            except Exception as exc:  # noqa: BLE001
                logger.exception("processing_exception", index=index, error=str(exc))
                return False
            logger.info("processing_success", index=index, fields=sorted(fields))
            return True


async def execute_batch(
    image_paths: Iterable[Path],
    options: ExecuteOptions,
    *,
    concurrency: int = 1,
    provider: ImageProvider | None = None,
    store: MetadataStore | None = None,
    http_client: httpx.AsyncClient | None = None,
) -> BatchSummary:
    """
    Process many images with at most `concurrency` in flight.

    A failure on one image is logged and counted; it never stops the batch.
    """
    if concurrency < 1:
        msg = f"concurrency must be >= 1, got {concurrency}"
        raise ValueError(msg)

    paths = list(image_paths)
    if provider is None:
        provider = get_provider(options.provider, model=options.model, http_client=http_client)

    semaphore = asyncio.Semaphore(concurrency)
    total = len(paths)
    outcomes = await asyncio.gather(
        *(
            _execute_logged(
                path,
                options,
                index=f"{idx}/{total}",
                semaphore=semaphore,
                provider=provider,
                store=store,
            )
            for idx, path in enumerate(paths, start=1)
        ),
    )

    summary = BatchSummary(total=total)
    for path, ok in zip(paths, outcomes, strict=True):
        if ok:
            summary.successful += 1
        else:
            summary.failed.append(path)

    logger.info(
        "processing_summary",
        total_files=summary.total,
        successful=summary.successful,
        failed=len(summary.failed),
    )
    if summary.failed:
        logger.error("files_failed", files=[str(path) for path in summary.failed])
    return summary
