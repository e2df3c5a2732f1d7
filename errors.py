from typing import Optional

# Largest primary key the storage layer can hold (signed 64-bit).
MAX_RECORD_ID = 2**63 - 1


class AppError(Exception):
    status_code = 500

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(AppError, ValueError):
    status_code = 400


class InvalidReference(AppError, ValueError):
    status_code = 400


class NotFound(AppError, LookupError):
    status_code = 404


class Unauthenticated(AppError):
    status_code = 401


class UpstreamFailure(AppError):
    """An external data provider failed; ``details`` carries what it said."""

    status_code = 502

    def __init__(self, message: str, details: Optional[object] = None) -> None:
        super().__init__(message)
        self.details = details


def parse_record_id(raw: object, label: str = "record") -> int:
    """Turn a path identifier into a primary key, rejecting malformed input."""
    text = str(raw).strip()
    if not (text.isascii() and text.isdecimal()):
        raise InvalidReference(f"Invalid {label} ID format.")
    pk = int(text)
    if not 0 < pk <= MAX_RECORD_ID:
        raise InvalidReference(f"Invalid {label} ID format.")
    return pk
