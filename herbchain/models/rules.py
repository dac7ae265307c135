# herbchain/models/rules.py
"""
Smart contract rules: declarative, species-scoped constraints.

A rule is one variant of a closed union keyed by its `type` tag. Adding an
enforcement policy means adding a variant here and a branch in
herbchain.core.engine, nothing else.
"""

from typing import Annotated, Dict, List, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field, TypeAdapter, model_validator

LatLng = Tuple[float, float]


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


# =========================
# GEO FENCE
# =========================

class HarvestZone(_Frozen):
    name: str
    # [[minLat, minLng], [maxLat, maxLng]]
    bounds: Optional[Tuple[LatLng, LatLng]] = None
    polygon: Optional[List[LatLng]] = None
    # Overrides the conservation rule's daily per-zone limit for this zone.
    max_daily_harvest: Optional[float] = Field(None, gt=0)
    conservation_status: Optional[str] = Field(None, description="Informational; not enforced")

    @model_validator(mode="after")
    def check_shape(self):
        if self.bounds is None and not self.polygon:
            raise ValueError(f"zone {self.name!r} needs bounds or a polygon")
        if self.polygon is not None and len(self.polygon) < 3:
            raise ValueError(f"zone {self.name!r} polygon needs at least 3 vertices")
        return self


class GeoFenceParameters(_Frozen):
    allowed_zones: List[HarvestZone] = Field(..., min_length=1)


# =========================
# SEASONAL
# =========================

class SeasonalParameters(_Frozen):
    # Ordered: the last entry is the final month of the season.
    harvesting_months: List[int]
    closed_months: List[int] = []
    recovery_months: List[int] = []
    min_plant_maturity: Optional[float] = None

    @model_validator(mode="after")
    def check_months(self):
        for m in (*self.harvesting_months, *self.closed_months, *self.recovery_months):
            if not 1 <= m <= 12:
                raise ValueError(f"invalid month {m}")
        return self


# =========================
# CONSERVATION
# =========================

class ConservationParameters(_Frozen):
    max_daily_harvest_per_zone: float = Field(..., gt=0)
    max_seasonal_harvest_per_zone: float = Field(..., gt=0)
    min_plant_age: Optional[float] = None
    max_harvest_percentage: Optional[float] = Field(None, gt=0, le=1)
    required_regeneration_time: Optional[float] = Field(None, description="Informational, in months; not enforced")
    minimum_plant_density: Optional[float] = Field(None, description="Informational, plants per m2; not enforced")


# =========================
# QUALITY
# =========================

class QualityParameters(_Frozen):
    max_moisture: float
    min_withanolides: Optional[float] = None
    max_total_ash: Optional[float] = None
    max_acid_insoluble_ash: Optional[float] = None
    max_pesticides: Optional[float] = None
    max_heavy_metals: Dict[str, float] = {}
    required_dna_match: bool = False
    min_active_compounds: Dict[str, float] = {}


# =========================
# RULE VARIANTS
# =========================

class _Rule(_Frozen):
    id: str
    species: str
    active: bool = True
    description: Optional[str] = None


class GeoFenceRule(_Rule):
    type: Literal["geo_fence"] = "geo_fence"
    parameters: GeoFenceParameters


class SeasonalRule(_Rule):
    type: Literal["seasonal"] = "seasonal"
    parameters: SeasonalParameters


class ConservationRule(_Rule):
    type: Literal["conservation"] = "conservation"
    parameters: ConservationParameters


class QualityRule(_Rule):
    type: Literal["quality"] = "quality"
    parameters: QualityParameters


SmartContractRule = Annotated[
    Union[GeoFenceRule, SeasonalRule, ConservationRule, QualityRule],
    Field(discriminator="type"),
]

_rule_adapter = TypeAdapter(SmartContractRule)


def parse_rule(data: dict) -> SmartContractRule:
    """Validate a plain document (seed file, Mongo, request body) into a rule."""
    return _rule_adapter.validate_python(data)
