# herbchain/errors.py
"""
Failure types raised by the core.

Rule violations are not exceptions: they are returned as strings in
ValidationResult.errors and never leave the validation engine.
"""


class HerbChainError(Exception):
    """Base class for every error raised by the ledger core."""


class IntegrityError(HerbChainError):
    """A recomputed hash or signature does not match the stored value."""

    def __init__(self, message: str, height: int | None = None):
        super().__init__(message)
        self.height = height


class NotFoundError(HerbChainError):
    """Unknown batch id, ledger height or product code."""


class StorageFault(HerbChainError):
    """The persistence layer failed during a read or an atomic commit."""


class ConcurrencyConflict(HerbChainError):
    """A commit raced another commit for the same ledger head or counters."""


class DuplicateCertificate(HerbChainError):
    """A quality test reuses a certificate hash already on the ledger."""

    def __init__(self, certificate_hash: str):
        super().__init__(f"Certificate {certificate_hash} is already recorded")
        self.certificate_hash = certificate_hash
