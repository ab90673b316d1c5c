"""
Programmatic entry points.

    await ExifAI("photo.jpg").provider("openai").model("gpt-4o").retries(2).run()

or, with a validated configuration object::

    await process_image(SimpleConfig(image="photo.jpg", provider="ollama"))
"""

from pathlib import Path
from typing import Self

from loguru import logger

from exif_ai.config import (
    DEFAULT_DESCRIPTION_PROMPT,
    DEFAULT_DESCRIPTION_TAGS,
    DEFAULT_TAG_PROMPT,
    DEFAULT_TAG_TAGS,
    AIConfig,
    DescriptionKey,
    ExecuteOptions,
    ExifAIConfig,
    ExifConfig,
    HttpClientConfig,
    ProcessingOptions,
    SimpleConfig,
    TagKey,
    TaskType,
)
from exif_ai.main import setup_logging
from exif_ai.metadata import FieldValue, MetadataStore
from exif_ai.orchestrator import execute
from exif_ai.providers import ImageProvider


class ExifAI:
    """Fluent builder around `orchestrator.execute`."""

    def __init__(self, image: str | Path) -> None:
        self._config = ExifAIConfig(image=Path(image), ai=AIConfig(provider=""))

    @property
    def config(self) -> ExifAIConfig:
        return self._config

    def provider(self, provider: str) -> Self:
        self._config.ai.provider = provider
        return self

    def model(self, model: str) -> Self:
        self._config.ai.model = model
        return self

    def tasks(self, *tasks: TaskType) -> Self:
        self._config.options.tasks = list(tasks)
        return self

    def description_prompt(self, prompt: str) -> Self:
        self._config.ai.description_prompt = prompt
        return self

    def tag_prompt(self, prompt: str) -> Self:
        self._config.ai.tag_prompt = prompt
        return self

    def provider_args(self, *args: str) -> Self:
        self._config.ai.args = list(args)
        return self

    def preview(self) -> Self:
        """Print the generated fields instead of writing them."""
        self._config.options.preview = True
        return self

    def verbose(self) -> Self:
        self._config.options.verbose = True
        return self

    def skip_existing(self) -> Self:
        """Leave filled fields untouched and merge tags with existing ones."""
        self._config.options.skip_existing = True
        return self

    def retries(self, count: int) -> Self:
        if count < 0:
            msg = f"retries must be >= 0, got {count}"
            raise ValueError(msg)
        self._config.options.retries = count
        return self

    def description_tags(self, *tags: DescriptionKey) -> Self:
        self._config.exif.description_tags = list(tags)
        return self

    def tag_tags(self, *tags: TagKey) -> Self:
        self._config.exif.tag_tags = list(tags)
        return self

    def exif_args(self, *args: str) -> Self:
        self._config.exif.args = list(args)
        return self

    def build_options(self) -> ExecuteOptions:
        """
        Translate the builder state into run options.

        Raises:
            ValueError: no provider was set.

        """
        ai, exif, options = self._config.ai, self._config.exif, self._config.options
        if not ai.provider:
            msg = "AI provider is required"
            raise ValueError(msg)

        return ExecuteOptions(
            provider=ai.provider,
            model=ai.model,
            tasks=options.tasks if options.tasks is not None else ["description", "tag"],
            description_prompt=ai.description_prompt or DEFAULT_DESCRIPTION_PROMPT,
            tag_prompt=ai.tag_prompt or DEFAULT_TAG_PROMPT,
            description_tags=(
                exif.description_tags
                if exif.description_tags is not None
                else list(DEFAULT_DESCRIPTION_TAGS)
            ),
            tag_tags=exif.tag_tags if exif.tag_tags is not None else list(DEFAULT_TAG_TAGS),
            dry_run=options.preview,
            avoid_overwrite=options.skip_existing,
            repeat=options.retries,
            write_args=exif.args,
            provider_args=ai.args,
        )

    async def run(
        self,
        *,
        provider: ImageProvider | None = None,
        store: MetadataStore | None = None,
        http_config: HttpClientConfig | None = None,
    ) -> dict[str, FieldValue]:
        """Process the image and return the fields that were written (or previewed)."""
        options = self.build_options()
        if self._config.options.verbose:
            setup_logging(file_log_level="OFF", console_log_level="DEBUG")
        logger.debug("running_exif_ai", image=str(self._config.image), provider=options.provider)

        if provider is not None:
            return await execute(self._config.image, options, provider=provider, store=store)
        async with (http_config or HttpClientConfig()).build_client() as http_client:
            return await execute(
                self._config.image,
                options,
                store=store,
                http_client=http_client,
            )


def _builder_from(config: ExifAIConfig) -> ExifAI:
    builder = ExifAI(config.image)
    builder._config = config.model_copy(deep=True)  # noqa: SLF001
    return builder


async def process_image(config: SimpleConfig, **run_kwargs) -> dict[str, FieldValue]:  # noqa: ANN003
    """Run the common case: one provider, default fields, optional preview."""
    advanced = ExifAIConfig(
        image=config.image,
        ai=AIConfig(
            provider=config.provider,
            model=config.model,
            description_prompt=config.description_prompt,
            tag_prompt=config.tag_prompt,
        ),
        options=ProcessingOptions(
            tasks=config.tasks,
            preview=config.preview,
            verbose=config.verbose,
        ),
    )
    return await _builder_from(advanced).run(**run_kwargs)


async def process_image_advanced(
    config: ExifAIConfig,
    **run_kwargs,  # noqa: ANN003
) -> dict[str, FieldValue]:
    """Run with the full configuration: EXIF fields, ExifTool args, retries, skip-existing."""
    return await _builder_from(config).run(**run_kwargs)


__all__ = [
    "ExifAI",
    "ExifAIConfig",
    "ExifConfig",
    "SimpleConfig",
    "process_image",
    "process_image_advanced",
]
