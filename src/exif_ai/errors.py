"""Exception hierarchy shared by the exif_ai modules."""


class ExifAIError(Exception):
    """Base class for errors raised by exif_ai."""


class ProviderError(ExifAIError):
    """A provider cannot be resolved or configured."""


class UnsupportedProviderError(ProviderError):
    def __init__(self, name: str, available: list[str]) -> None:
        self.name = name
        self.available = available
        super().__init__(f"Unsupported provider {name!r}; choose one of: {', '.join(available)}")


class ProviderConfigError(ProviderError):
    """A provider exists but its endpoint or model is unusable."""


class MetadataError(ExifAIError):
    """Reading or writing metadata with ExifTool failed."""
