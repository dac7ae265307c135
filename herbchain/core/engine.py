# herbchain/core/engine.py
"""
Validation Engine.

evaluate() checks a collection event against every applicable rule and the
conservation totals it is handed, and reports every violation it finds in
one pass. It reads nothing and writes nothing: identical inputs always give
an identical ValidationResult.
"""

from dataclasses import dataclass, field
from typing import Iterable, List, Optional

from herbchain.core.geo import find_zone
from herbchain.core.tracker import ConservationState
from herbchain.models.events import CollectionEvent, LabTestResult, LabTestType, QualityTest, VisualGrade
from herbchain.models.ledger import ValidationResult
from herbchain.models.rules import (
    ConservationRule,
    GeoFenceRule,
    HarvestZone,
    QualityRule,
    SeasonalRule,
    SmartContractRule,
)

UTILIZATION_WARNING = 0.8
_GENERAL_MEASUREMENTS = ("moisture", "total_ash", "acid_insoluble_ash")


@dataclass
class _Check:
    errors: List[str] = field(default_factory=list)
    warnings: List[str] = field(default_factory=list)
    satisfied: str | None = None


# =========================
# COLLECTION EVENTS
# =========================

def matched_zone(event: CollectionEvent, rules: Iterable[SmartContractRule]) -> Optional[HarvestZone]:
    """The approved zone an event's coordinates fall in, if any active geo-fence has one."""
    for rule in rules:
        if isinstance(rule, GeoFenceRule) and rule.active and rule.species == event.species:
            zone = find_zone(rule.parameters.allowed_zones, event.lat, event.lng)
            if zone is not None:
                return zone
    return None


def quota_zone(event: CollectionEvent, rules: Iterable[SmartContractRule]) -> str:
    """
    Zone whose conservation counters an event is charged to.

    The geo-fenced zone takes precedence over the reported label; the
    label is only used when no active geo-fence matched.
    """
    zone = matched_zone(event, rules)
    return zone.name if zone is not None else event.zone


def evaluate(
    event: CollectionEvent,
    rules: Iterable[SmartContractRule],
    conservation: ConservationState,
) -> ValidationResult:
    result = ValidationResult()
    rules = tuple(rules)
    zone = matched_zone(event, rules)
    for rule in rules:
        if not rule.active or rule.species != event.species:
            continue
        check = _dispatch(event, rule, conservation, zone)
        result.errors.extend(check.errors)
        result.warnings.extend(check.warnings)
        if not check.errors and check.satisfied:
            result.satisfied_rules.append(check.satisfied)
    return result


def _dispatch(
    event: CollectionEvent,
    rule: SmartContractRule,
    conservation: ConservationState,
    zone: Optional[HarvestZone],
) -> _Check:
    if isinstance(rule, GeoFenceRule):
        return _check_geo_fence(event, rule)
    if isinstance(rule, SeasonalRule):
        return _check_seasonal(event, rule)
    if isinstance(rule, ConservationRule):
        return _check_conservation(event, rule, conservation, zone)
    if isinstance(rule, QualityRule):
        return _check_quality(event, rule)
    raise TypeError(f"No check implemented for rule type {type(rule).__name__}")


def _check_geo_fence(event: CollectionEvent, rule: GeoFenceRule) -> _Check:
    check = _Check()
    zone = find_zone(rule.parameters.allowed_zones, event.lat, event.lng)
    if zone is None:
        check.errors.append(
            f"Harvesting location ({event.lat:.4f}, {event.lng:.4f}) is outside approved zones for {event.species}"
        )
        return check
    if zone.name != event.zone:
        check.warnings.append(f"Reported zone '{event.zone}' differs from geo-fenced zone '{zone.name}'")
    check.satisfied = f"{rule.id}: geo-fencing ({zone.name})"
    return check


def _check_seasonal(event: CollectionEvent, rule: SeasonalRule) -> _Check:
    check = _Check()
    params = rule.parameters
    month = event.timestamp.month

    if month in params.closed_months:
        check.errors.append(f"Harvesting prohibited in month {month} (closed season: ecological protection)")
    elif month not in params.harvesting_months:
        if month in params.recovery_months:
            check.errors.append(f"Harvesting prohibited in month {month} (recovery period: post-harvest regeneration)")
        else:
            check.errors.append(f"Harvesting not permitted in month {month} for {event.species}")
    elif params.harvesting_months and month == params.harvesting_months[-1]:
        check.warnings.append("End of harvesting season approaching - ensure sufficient recovery time")

    if (
        params.min_plant_maturity is not None
        and event.plant_age_months is not None
        and event.plant_age_months < params.min_plant_maturity
    ):
        check.errors.append(
            f"Plants harvested at {event.plant_age_months:g} months; minimum maturity is {params.min_plant_maturity:g} months"
        )

    check.satisfied = f"{rule.id}: seasonal restrictions"
    return check


def _quota(check: _Check, label: str, used: float, amount: float, limit: float, zone: str) -> None:
    projected = used + amount
    if projected > limit:
        check.errors.append(f"{label} harvest limit exceeded in {zone}: {projected:.1f}kg > {limit:g}kg")
        return
    utilization = projected / limit
    if utilization >= UTILIZATION_WARNING:
        check.warnings.append(f"{label} harvest quota is {utilization * 100:.1f}% utilized in {zone}")


def _check_conservation(
    event: CollectionEvent,
    rule: ConservationRule,
    state: ConservationState,
    zone: Optional[HarvestZone],
) -> _Check:
    check = _Check()
    params = rule.parameters
    amount = event.quality.estimated_yield

    daily_limit = params.max_daily_harvest_per_zone
    # A zone's own daily ceiling replaces the species-wide per-zone limit.
    if zone is not None and zone.max_daily_harvest is not None:
        daily_limit = zone.max_daily_harvest

    _quota(check, "Daily", state.daily_used, amount, daily_limit, state.zone)
    _quota(check, "Seasonal", state.seasonal_used, amount, params.max_seasonal_harvest_per_zone, state.zone)

    if params.min_plant_age is not None and event.plant_age_months is not None:
        if event.plant_age_months < params.min_plant_age:
            check.errors.append(
                f"Plant age {event.plant_age_months:g} months is below the minimum of {params.min_plant_age:g} months"
            )
    if params.max_harvest_percentage is not None and event.harvest_fraction is not None:
        if event.harvest_fraction > params.max_harvest_percentage:
            check.errors.append(
                f"Harvesting {event.harvest_fraction:.0%} of the population exceeds the "
                f"{params.max_harvest_percentage:.0%} sustainable limit"
            )

    check.satisfied = f"{rule.id}: conservation limits"
    return check


def _check_quality(event: CollectionEvent, rule: QualityRule) -> _Check:
    check = _Check()
    moisture = event.quality.moisture
    if moisture > rule.parameters.max_moisture:
        check.errors.append(f"Moisture content {moisture:g}% exceeds maximum {rule.parameters.max_moisture:g}%")
    # Lowest tier is rejected whatever the numbers say.
    if event.quality.visual_grade == VisualGrade.POOR:
        check.errors.append("Visual quality assessment failed - poor grade not acceptable")
    check.satisfied = f"{rule.id}: quality thresholds"
    return check


# =========================
# LAB RESULTS
# =========================

def _max_limit(check: _Check, name: str, value: float | None, limit: float | None, unit: str) -> None:
    if value is not None and limit is not None and value > limit:
        check.errors.append(f"{name} {value:g}{unit} exceeds limit {limit:g}{unit}")


def _min_limit(check: _Check, name: str, value: float | None, limit: float | None, unit: str) -> None:
    if limit is None:
        return
    if value is None:
        check.errors.append(f"{name} not reported")
    elif value < limit:
        check.errors.append(f"{name} {value:g}{unit} below minimum {limit:g}{unit}")


def assess_quality_test(test: QualityTest, rules: Iterable[SmartContractRule]) -> ValidationResult:
    """
    Check laboratory measurements against the species' quality rules.

    The outcome decides the recorded test's compliance flag; a failing test
    is still a fact and is recorded either way.
    """
    result = ValidationResult()
    if test.result == LabTestResult.FAIL:
        result.errors.append(f"Laboratory reported a failing {test.test_type.value} result")
    elif test.result == LabTestResult.PENDING:
        result.warnings.append(f"{test.test_type.value} result is still pending")

    for rule in rules:
        if not isinstance(rule, QualityRule) or not rule.active:
            continue
        params = rule.parameters
        check = _Check()
        values = test.values

        _max_limit(check, "Moisture", values.get("moisture"), params.max_moisture, "%")
        _max_limit(check, "Total ash", values.get("total_ash"), params.max_total_ash, "%")
        _max_limit(check, "Acid-insoluble ash", values.get("acid_insoluble_ash"), params.max_acid_insoluble_ash, "%")

        if test.test_type == LabTestType.PESTICIDE:
            for analyte, value in sorted(values.items()):
                if analyte in _GENERAL_MEASUREMENTS:
                    continue
                _max_limit(check, f"Pesticide residue {analyte}", value, params.max_pesticides, "ppm")
        elif test.test_type == LabTestType.HEAVY_METALS:
            for metal, limit in sorted(params.max_heavy_metals.items()):
                _max_limit(check, f"Heavy metal {metal}", values.get(metal), limit, "ppm")
        elif test.test_type == LabTestType.POTENCY:
            _min_limit(check, "Withanolides", values.get("withanolides"), params.min_withanolides, "%")
            for compound, limit in sorted(params.min_active_compounds.items()):
                _min_limit(check, compound, values.get(compound), limit, "%")
        elif test.test_type == LabTestType.DNA_BARCODE and params.required_dna_match:
            if values.get("match", 0.0) < 1.0:
                check.errors.append("DNA barcode does not match the declared species")

        result.errors.extend(check.errors)
        if not check.errors:
            result.satisfied_rules.append(f"{rule.id}: {test.test_type.value} thresholds")
    return result
