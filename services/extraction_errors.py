"""Error taxonomy for the upload and extraction flow."""

from __future__ import annotations

from typing import Optional


class ExtractionError(RuntimeError):
    """Base error carrying the HTTP status the upload endpoint should answer with."""

    status_code = 500

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        if status_code is not None:
            self.status_code = status_code


class InputError(ExtractionError):
    """No file supplied, an empty file, or a file type we cannot forward."""

    status_code = 400


class PayloadTooLarge(ExtractionError):
    status_code = 413

    def __init__(self, size: int, limit: int) -> None:
        super().__init__(
            f"File is {size:,} bytes which exceeds the {limit:,} byte upload limit"
        )
        self.size = size
        self.limit = limit


class ProviderTransportError(ExtractionError):
    """Auth, network or unparseable-envelope failure talking to the provider."""

    status_code = 502


class ProviderTimeout(ExtractionError):
    status_code = 504

    def __init__(self, timeout_seconds: float) -> None:
        super().__init__(
            f"Extraction provider did not answer within {timeout_seconds:g}s; "
            "try a lower page limit or retry"
        )
        self.timeout_seconds = timeout_seconds


class ProviderNotEnabled(ExtractionError):
    status_code = 501


__all__ = [
    "ExtractionError",
    "InputError",
    "PayloadTooLarge",
    "ProviderNotEnabled",
    "ProviderTimeout",
    "ProviderTransportError",
]
