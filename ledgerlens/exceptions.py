"""Exception hierarchy for LedgerLens.

Single-record requests raise these directly. Page assembly catches the
per-record ones (``MalformedRecord``, ``UnrecognizedOutputKind``) and
reports them as anomalies instead.
"""
from __future__ import annotations

from typing import Any, Optional


class LedgerLensError(Exception):
    """Base exception for all LedgerLens errors."""

    def __init__(self, message: str, context: Optional[dict[str, Any]] = None) -> None:
        super().__init__(message)
        self.message = message
        self.context = context or {}

    def to_dict(self) -> dict[str, Any]:
        """Convert to dictionary for logging/serialization."""
        return {
            "error_type": self.__class__.__name__,
            "message": self.message,
            "context": self.context,
        }


class FetchFailed(LedgerLensError):
    """The upstream API was unavailable, timed out or answered with an error."""

    def __init__(
        self,
        message: str,
        url: Optional[str] = None,
        status_code: Optional[int] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context)
        self.url = url
        self.status_code = status_code

    def to_dict(self) -> dict[str, Any]:
        data = super().to_dict()
        data.update({"url": self.url, "status_code": self.status_code})
        return data


class MalformedRecord(LedgerLensError):
    """A raw record has a field that cannot be interpreted."""

    def __init__(
        self,
        message: str,
        record_id: Optional[str] = None,
        context: Optional[dict[str, Any]] = None,
    ) -> None:
        super().__init__(message, context)
        self.record_id = record_id


class UnrecognizedOutputKind(LedgerLensError):
    """An output carries a type code or flag combination we cannot classify."""

    def __init__(
        self,
        message: str,
        output_id: Optional[str] = None,
        output_type: Optional[int] = None,
    ) -> None:
        super().__init__(message, {"output_id": output_id, "output_type": output_type})
        self.output_id = output_id
        self.output_type = output_type


class MintRightsNotFound(LedgerLensError):
    """The transaction has no NFT minting-rights output."""


class RedemptionNotFound(LedgerLensError):
    """The NFT minting-rights output was never spent."""


class ReconciliationError(LedgerLensError):
    """A stake-add and stake-remove pair cannot be reconciled."""
