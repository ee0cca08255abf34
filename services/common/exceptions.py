"""
Exceptions raised by the conversion source clients and the normalizer.

The report service turns every SourceAPIError into a failed Result, so the
message should read well on its own in the dashboard toast.
"""

from typing import Optional


class SourceAPIError(Exception):
    """A conversion source could not be queried (transport, HTTP or API error)"""

    def __init__(self, source: str, message: str, status_code: Optional[int] = None):
        self.source = source
        self.message = message
        self.status_code = status_code
        super().__init__(f"{source}: {message}")


class MalformedPayloadError(SourceAPIError):
    """A source answered, but the payload is missing fields we depend on"""
    pass
