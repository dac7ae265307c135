# herbchain/models/events.py
"""
Event shapes submitted by collectors, processors and labs.

Events are frozen: once a payload has been hashed into the ledger it cannot
change, and acceptance of a collection event yields a new copy.
"""

from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator


class VisualGrade(str, Enum):
    EXCELLENT = "excellent"
    GOOD = "good"
    FAIR = "fair"
    POOR = "poor"


class StepType(str, Enum):
    DRYING = "drying"
    GRINDING = "grinding"
    EXTRACTION = "extraction"
    PACKAGING = "packaging"
    STORAGE = "storage"


class LabTestType(str, Enum):
    PESTICIDE = "pesticide"
    HEAVY_METALS = "heavy_metals"
    DNA_BARCODE = "dna_barcode"
    POTENCY = "potency"
    MICROBIAL = "microbial"


class LabTestResult(str, Enum):
    PASS = "pass"
    FAIL = "fail"
    PENDING = "pending"


def _as_utc(value: datetime) -> datetime:
    # Naive timestamps from capture forms are taken as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class _Event(BaseModel):
    model_config = ConfigDict(frozen=True)

    batch_id: str = Field(..., min_length=1, max_length=50)
    timestamp: datetime

    @field_validator("timestamp")
    @classmethod
    def normalize_timestamp(cls, v: datetime) -> datetime:
        return _as_utc(v)


# =========================
# COLLECTION
# =========================

class QualityMetrics(BaseModel):
    model_config = ConfigDict(frozen=True)

    moisture: float = Field(..., ge=0, le=100)
    visual_grade: VisualGrade
    estimated_yield: float = Field(..., ge=0, description="Estimated yield in kg")


class CollectionEvent(_Event):
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)
    collector_id: str
    species: str = Field(..., min_length=1, max_length=100)
    quality: QualityMetrics
    zone: str = Field(..., min_length=1, max_length=100)
    photos: List[str] = []
    plant_age_months: Optional[float] = Field(None, ge=0)
    harvest_fraction: Optional[float] = Field(None, ge=0, le=1)
    accepted: bool = False

    def mark_accepted(self) -> "CollectionEvent":
        return self.model_copy(update={"accepted": True})


# =========================
# PROCESSING
# =========================

class ProcessingStep(_Event):
    step_type: StepType
    parameters: Dict[str, Any] = {}
    temperature: Optional[float] = Field(None, ge=-50, le=200)
    humidity: Optional[float] = Field(None, ge=0, le=100)
    duration: Optional[float] = Field(None, ge=0, description="Minutes")
    processor_id: str


# =========================
# LAB TESTING
# =========================

class QualityTest(_Event):
    test_type: LabTestType
    result: LabTestResult = LabTestResult.PENDING
    values: Dict[str, float] = {}
    certificate_hash: str = Field(..., min_length=1, max_length=128)
    lab_id: str
    compliance: bool = False

    def with_compliance(self, compliance: bool) -> "QualityTest":
        return self.model_copy(update={"compliance": compliance})
