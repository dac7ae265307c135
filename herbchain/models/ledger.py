# herbchain/models/ledger.py
from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, computed_field

GENESIS_HASH = "0" * 64


class TransactionKind(str, Enum):
    COLLECTION_EVENT = "collection_event"
    PROCESSING_STEP = "processing_step"
    QUALITY_TEST = "quality_test"


class LedgerTransaction(BaseModel):
    """One hash-chained ledger entry, as exported to audit tooling."""

    model_config = ConfigDict(frozen=True)

    height: int
    kind: TransactionKind
    batch_id: str
    payload: Dict[str, Any]
    timestamp: datetime
    organization_id: str
    hash: str
    previous_hash: str
    signature: str


class ValidationResult(BaseModel):
    errors: list[str] = []
    warnings: list[str] = []
    satisfied_rules: list[str] = []

    @computed_field
    @property
    def accepted(self) -> bool:
        return not self.errors


class SubmissionOutcome(BaseModel):
    """What a collaborator gets back after submitting an event."""

    validation: ValidationResult
    transaction: Optional[LedgerTransaction] = None
