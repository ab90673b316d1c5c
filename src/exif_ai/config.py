"""Environment-driven defaults, metadata field domains and run configuration models."""

import os
from pathlib import Path
from typing import Literal, get_args

import httpx
from pydantic import BaseModel, Field


LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL", "OFF"]
TaskType = Literal["description", "tag", "tags"]

# Metadata fields holding a single plain string.
DescriptionKey = Literal[
    "XPComment",
    "Description",
    "ImageDescription",
    "Caption-Abstract",
    "UserComment",
    "Comment",
    "Headline",
    "Title",
    "XPTitle",
    "ObjectName",
]

# Metadata fields holding a string or a list of strings.
TagKey = Literal[
    "Subject",
    "TagsList",
    "Keywords",
    "HierarchicalSubject",
    "CatalogSets",
    "LastKeywordXMP",
    "LastKeywordIPTC",
    "SupplementalCategories",
    "WeightedFlatSubject",
]

DESCRIPTION_KEYS: frozenset[str] = frozenset(get_args(DescriptionKey))
TAG_KEYS: frozenset[str] = frozenset(get_args(TagKey))

DEFAULT_DESCRIPTION_TAGS: tuple[DescriptionKey, ...] = (
    "XPComment",
    "Description",
    "ImageDescription",
    "Caption-Abstract",
)
DEFAULT_TAG_TAGS: tuple[TagKey, ...] = ("Subject", "TagsList", "Keywords")
DEFAULT_TASKS: tuple[TaskType, ...] = ("description", "tag")

# Provider endpoints and credentials
DEFAULT_OPENAI_BASE_URL = os.getenv("OPENAI_BASE_URL")
DEFAULT_OLLAMA_BASE_URL = os.getenv("OLLAMA_BASE_URL", "http://localhost:11434/v1")
DEFAULT_OLLAMA_API_KEY = os.getenv("OLLAMA_API_KEY")
DEFAULT_LMSTUDIO_BASE_URL = os.getenv("LM_STUDIO_BASE_URL", "http://localhost:1234/v1")
DEFAULT_LMSTUDIO_API_KEY = os.getenv("LM_STUDIO_API_KEY", os.getenv("OPENAI_API_KEY"))
DEFAULT_OPENAI_COMPATIBLE_BASE_URL = os.getenv(
    "OPENAI_COMPATIBLE_BASE_URL",
    "http://localhost:8000/v1",
)

# Generation and image settings
DEFAULT_TEMPERATURE = float(os.getenv("TEMPERATURE", "0.2"))
DEFAULT_MAX_TOKENS = int(os.getenv("MAX_TOKENS", "400"))
DEFAULT_JPEG_QUALITY = int(os.getenv("JPEG_QUALITY", "85"))
DEFAULT_DIMENSIONS = int(os.getenv("JPEG_DIMENSIONS", "2000"))
DEFAULT_CONCURRENCY = int(os.getenv("CONCURRENCY", "2"))
DEFAULT_HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "120"))
DEFAULT_PROXY = os.getenv("HTTPS_PROXY") or os.getenv("HTTP_PROXY") or None

DEFAULT_DESCRIPTION_PROMPT = (
    "Describe this image in one or two plain sentences. "
    "Do not use markdown, lists or headings."
)
DEFAULT_TAG_PROMPT = (
    "Tag this image with relevant keywords based on subject, object, event and place. "
    "Output format: <tag1>, <tag2>, <tag3>, ..."
)


class HttpClientConfig(BaseModel):
    """Settings for the single HTTP client shared by every provider in a run."""

    proxy: str | None = DEFAULT_PROXY
    timeout: float = DEFAULT_HTTP_TIMEOUT
    verify: bool = True

    def build_client(self) -> httpx.AsyncClient:
        """Create the AsyncClient; the caller owns it and must close it."""
        return httpx.AsyncClient(
            proxy=self.proxy,
            timeout=httpx.Timeout(self.timeout),
            verify=self.verify,
        )


class ExecuteOptions(BaseModel):
    """Every knob that shapes the processing of one image."""

    provider: str
    model: str | None = None
    tasks: list[TaskType] = Field(default_factory=lambda: list(DEFAULT_TASKS))
    description_prompt: str = DEFAULT_DESCRIPTION_PROMPT
    tag_prompt: str = DEFAULT_TAG_PROMPT
    description_tags: list[DescriptionKey] = Field(
        default_factory=lambda: list(DEFAULT_DESCRIPTION_TAGS),
    )
    tag_tags: list[TagKey] = Field(default_factory=lambda: list(DEFAULT_TAG_TAGS))
    extra_tags: list[str] = Field(default_factory=list)
    dry_run: bool = False
    avoid_overwrite: bool = False
    repeat: int = Field(default=0, ge=0)
    write_args: list[str] = Field(default_factory=list)
    provider_args: list[str] = Field(default_factory=list)
    jpeg_quality: int = Field(default=DEFAULT_JPEG_QUALITY, ge=1, le=100)
    jpeg_dimensions: int = Field(default=DEFAULT_DIMENSIONS, gt=0)

    @property
    def wants_description(self) -> bool:
        return "description" in self.tasks

    @property
    def wants_tags(self) -> bool:
        return "tag" in self.tasks or "tags" in self.tasks


class AIConfig(BaseModel):
    provider: str
    model: str | None = None
    description_prompt: str | None = None
    tag_prompt: str | None = None
    args: list[str] = Field(default_factory=list)


class ExifConfig(BaseModel):
    description_tags: list[DescriptionKey] | None = None
    tag_tags: list[TagKey] | None = None
    args: list[str] = Field(default_factory=list)


class ProcessingOptions(BaseModel):
    tasks: list[TaskType] | None = None
    preview: bool = False
    skip_existing: bool = False
    retries: int = Field(default=0, ge=0)
    verbose: bool = False


class ExifAIConfig(BaseModel):
    """Complete configuration accepted by `api.process_image_advanced`."""

    image: Path
    ai: AIConfig
    exif: ExifConfig = Field(default_factory=ExifConfig)
    options: ProcessingOptions = Field(default_factory=ProcessingOptions)


class SimpleConfig(BaseModel):
    """Reduced configuration for the common case, see `api.process_image`."""

    image: Path
    provider: str
    model: str | None = None
    tasks: list[TaskType] = Field(default_factory=lambda: list(DEFAULT_TASKS))
    description_prompt: str | None = None
    tag_prompt: str | None = None
    preview: bool = False
    verbose: bool = False
