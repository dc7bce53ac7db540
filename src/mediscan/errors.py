"""Error taxonomy shared by the assessment engine, triage flow and record store.

User-visible policy:
  - InputError / SessionBusyError / MediaError: rejected locally, never reach the oracle.
  - OracleError / EmptyResponseError / SchemaValidationError: recovered by the
    conversation engine with a retry-inviting assistant turn.
  - LookupFailedError: swallowed after finalize; the record stands.
  - GuideLoadError: fatal to the guide action; user is told to call emergency services.
"""

from __future__ import annotations


class MediscanError(Exception):
    """Base class for all mediscan errors."""


class InputError(MediscanError):
    """Submission rejected locally (empty text and no attachments, bad parameters)."""


class SessionBusyError(InputError):
    """A turn was submitted while the previous oracle round-trip is still pending."""


class MediaError(InputError):
    """User-supplied image could not be decoded or normalized."""


class OracleError(MediscanError):
    """Oracle call failed (network, timeout, non-2xx, missing credentials)."""


class EmptyResponseError(OracleError):
    """Oracle answered with no content."""


class SchemaValidationError(OracleError):
    """Oracle returned malformed or incomplete structured data (contract violation)."""

    def __init__(self, message: str, errors: list[str] | None = None) -> None:
        super().__init__(message)
        self.errors = list(errors or [])


class LookupFailedError(MediscanError):
    """Specialist lookup failed."""


class GuideLoadError(MediscanError):
    """First-aid guide could not be loaded; no offline fallback is safe."""


class TriageStateError(MediscanError):
    """Operation not valid in the current emergency-triage state."""


class RecordStoreError(MediscanError):
    """Record store rejected an operation."""


class RecordNotFoundError(RecordStoreError):
    """No record with the given id."""
