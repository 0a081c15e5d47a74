"""
Error types raised by the catalog pipeline.
"""


class CatalogError(Exception):
    """Base class for catalog pipeline failures"""


class FetchError(CatalogError):
    """Network, timeout or HTTP status failure while fetching a source"""

    def __init__(self, url: str, message: str, status_code: int | None = None):
        super().__init__(f"{message} ({url})")
        self.url = url
        self.status_code = status_code


class ParseError(CatalogError, ValueError):
    """Payload could not be turned into any usable entries"""


class ExhaustedRetryError(CatalogError):
    """Every attempt of a refresh failed; the previous state was kept"""

    def __init__(self, resource: str, attempts: int, last_error: BaseException | None = None):
        detail = f": {last_error}" if last_error else ""
        super().__init__(f"{resource} refresh failed after {attempts} attempt(s){detail}")
        self.resource = resource
        self.attempts = attempts
        self.last_error = last_error
