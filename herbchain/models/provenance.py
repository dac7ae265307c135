# herbchain/models/provenance.py
from datetime import date, datetime
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, Field


class Location(BaseModel):
    lat: float
    lng: float


class CustodyStep(BaseModel):
    organization_id: str
    action: str
    location: Location
    timestamp: datetime
    height: int = Field(description="Ledger height of the recorded event.")
    transaction_hash: str


class ProofType(str, Enum):
    ORGANIC = "organic"
    FAIR_TRADE = "fair_trade"
    SUSTAINABLE_HARVEST = "sustainable_harvest"
    COMMUNITY_SUPPORT = "community_support"


class SustainabilityProof(BaseModel):
    type: ProofType
    certificate_id: str
    issued_by: str
    valid_from: date
    valid_until: date


class FinalProduct(BaseModel):
    product_code: str
    product_name: str
    manufacturer_id: str
    batch_size: float = Field(..., ge=0)
    expiry_date: date


class Provenance(BaseModel):
    batch_id: str
    chain_of_custody: List[CustodyStep] = Field(description="Chronological list of all recorded supply chain events.")
    sustainability_proofs: List[SustainabilityProof] = []
    final_product: FinalProduct
    generated_at: datetime
    ledger_height: int


class ProvenanceLookup(BaseModel):
    provenance: Provenance
    verified: bool = Field(description="False for legacy unsigned product codes.")
    code_format: str


class ProvenanceRequest(BaseModel):
    product_name: Optional[str] = None
    manufacturer_id: Optional[str] = None
    batch_size: Optional[float] = Field(None, ge=0)
