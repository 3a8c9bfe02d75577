class IngestionError(Exception):
    """Base class for every error raised by the ingestion pipeline."""


class ConfigurationError(IngestionError):
    """A required credential or setting is missing. Fatal for the run."""


class FetchError(IngestionError):
    """A single page or API call could not be fetched."""

    def __init__(self, url: str, message: str, status_code: int = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class DiscoveryError(IngestionError):
    """URL discovery could not produce any candidates."""


class StorageError(IngestionError):
    """A single record could not be written to the canonical store."""
