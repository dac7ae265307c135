# herbchain/core/tracker.py
"""
Conservation Tracker: running harvest totals per (species, zone, day) and
per (species, zone, season).

Totals only move inside a ledger write transaction (see Ledger.write), so an
accepted collection event and its counter increment are applied together.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime
from typing import Iterable, Optional

from herbchain.errors import ConcurrencyConflict
from herbchain.models.rules import ConservationRule, GeoFenceRule
from herbchain.storage.base import LedgerStore, UsageKey, WriteTransaction

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ConservationState:
    """Totals recorded so far for the day and season an event falls in."""

    species: str
    zone: str
    day: str
    season: str
    daily_used: float = 0.0
    seasonal_used: float = 0.0


def season_label(when: date, start_month: int) -> str:
    if when.month >= start_month:
        return f"{when.year}-{when.year + 1}"
    return f"{when.year - 1}-{when.year}"


def _zone_ceiling(rules: Iterable, zone: str) -> Optional[float]:
    for rule in rules:
        if isinstance(rule, GeoFenceRule):
            for candidate in rule.parameters.allowed_zones:
                if candidate.name == zone and candidate.max_daily_harvest is not None:
                    return candidate.max_daily_harvest
    return None


class ConservationTracker:
    def __init__(self, store: LedgerStore, season_start_month: int = 6):
        if not 1 <= season_start_month <= 12:
            raise ValueError(f"invalid season start month {season_start_month}")
        self._store = store
        self.season_start_month = season_start_month

    def _keys(self, species: str, zone: str, timestamp: datetime) -> tuple[UsageKey, UsageKey]:
        day = timestamp.date()
        return (
            UsageKey(species, zone, f"day:{day.isoformat()}"),
            UsageKey(species, zone, f"season:{season_label(day, self.season_start_month)}"),
        )

    async def daily_usage(self, species: str, zone: str, day: date) -> float:
        return await self._store.usage(UsageKey(species, zone, f"day:{day.isoformat()}"))

    async def seasonal_usage(self, species: str, zone: str, season: str) -> float:
        return await self._store.usage(UsageKey(species, zone, f"season:{season}"))

    async def snapshot(self, species: str, zone: str, timestamp: datetime) -> ConservationState:
        daily_key, season_key = self._keys(species, zone, timestamp)
        return ConservationState(
            species=species,
            zone=zone,
            day=timestamp.date().isoformat(),
            season=season_label(timestamp.date(), self.season_start_month),
            daily_used=await self._store.usage(daily_key),
            seasonal_used=await self._store.usage(season_key),
        )

    async def commit(
        self,
        species: str,
        zone: str,
        amount: float,
        timestamp: datetime,
        txn: WriteTransaction,
        expected: Optional[ConservationState] = None,
    ) -> None:
        """
        Stage an increment of both counters inside `txn`.

        When `expected` is given it is the state the event was validated
        against; if another commit has moved the counters since, the
        validation is stale and ConcurrencyConflict is raised.
        """
        daily_key, season_key = self._keys(species, zone, timestamp)
        if expected is not None:
            daily_now = await txn.usage(daily_key)
            seasonal_now = await txn.usage(season_key)
            if daily_now != expected.daily_used or seasonal_now != expected.seasonal_used:
                logger.warning(
                    "Conservation counters for %s/%s moved during validation", species, zone
                )
                raise ConcurrencyConflict(f"conservation totals for {species} in {zone} changed")
        await txn.add_usage(daily_key, amount)
        await txn.add_usage(season_key, amount)

    async def status(
        self, species: str, zone: str, day: date, rules: Iterable
    ) -> dict:
        """Used vs. limit figures for dashboards."""
        season = season_label(day, self.season_start_month)
        daily_used = await self.daily_usage(species, zone, day)
        seasonal_used = await self.seasonal_usage(species, zone, season)
        rules = tuple(rules)
        limits = next((r.parameters for r in rules if isinstance(r, ConservationRule)), None)
        daily_limit = limits.max_daily_harvest_per_zone if limits else None
        ceiling = _zone_ceiling(rules, zone)
        if limits and ceiling is not None:
            daily_limit = ceiling
        seasonal_limit = limits.max_seasonal_harvest_per_zone if limits else None
        return {
            "species": species,
            "zone": zone,
            "day": day.isoformat(),
            "season": season,
            "dailyHarvestUsed": daily_used,
            "dailyHarvestLimit": daily_limit,
            "seasonalHarvestUsed": seasonal_used,
            "seasonalHarvestLimit": seasonal_limit,
            "dailyUtilization": round(daily_used / daily_limit, 4) if daily_limit else None,
            "seasonalUtilization": round(seasonal_used / seasonal_limit, 4) if seasonal_limit else None,
        }
