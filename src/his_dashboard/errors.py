"""Error taxonomy for the ingestion / aggregation core."""


class HisDashboardError(Exception):
    """Base class for all pipeline errors."""


class SourceConnectionError(HisDashboardError, ConnectionError):
    """Remote CSV could not be fetched (network failure or non-2xx response)."""


class FormatError(HisDashboardError):
    """Export has no header line, or its header lacks the admission-date column."""


class StorageError(HisDashboardError):
    """Local store could not be opened or a transaction failed."""


class PartialRowError(HisDashboardError):
    """
    A single data row is malformed.

    Never escapes the parser: the row is dropped and only shows up
    as a lower final count.
    """
