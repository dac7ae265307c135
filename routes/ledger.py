# routes/ledger.py
from datetime import date, datetime, timezone
from typing import Optional

from fastapi import APIRouter, Depends, Query, Request

from herbchain.deps import get_ledger, get_registry, get_tracker
from utils.jwt import verify_token

router = APIRouter(prefix="/api", tags=["Ledger"])

# =========================
# AUDIT EXPORT
# =========================

@router.get("/ledger")
async def export_ledger(
    request: Request,
    start: int = Query(0, ge=0),
    limit: int = Query(100, ge=1, le=1000),
    user=Depends(verify_token),
):
    ledger = get_ledger(request)
    entries = await ledger.export(start, limit)
    return {
        "height": await ledger.height(),
        "latestHash": await ledger.latest_hash(),
        "transactions": [e.model_dump(mode="json") for e in entries],
    }


@router.get("/ledger/verify")
async def verify_ledger(request: Request, user=Depends(verify_token)):
    """Recompute every hash, link and signature; 409 on the first mismatch."""
    ledger = get_ledger(request)
    verified = await ledger.verify_chain()
    return {"valid": True, "verifiedEntries": verified, "latestHash": await ledger.latest_hash()}


@router.get("/ledger/batch/{batch_id}")
async def batch_history(batch_id: str, request: Request, user=Depends(verify_token)):
    entries = await get_ledger(request).transactions_for_batch(batch_id)
    return {"batchId": batch_id, "transactions": [e.model_dump(mode="json") for e in entries]}


@router.get("/ledger/{height}")
async def ledger_entry(height: int, request: Request, user=Depends(verify_token)):
    entry = await get_ledger(request).transaction_at(height)
    return entry.model_dump(mode="json")

# =========================
# CONSERVATION & RULES
# =========================

@router.get("/conservation/{species}/{zone}")
async def conservation_status(
    species: str,
    zone: str,
    request: Request,
    day: Optional[date] = None,
    user=Depends(verify_token),
):
    day = day or datetime.now(timezone.utc).date()
    rules = get_registry(request).rules_for(species)
    return await get_tracker(request).status(species, zone, day, rules)


@router.get("/rules")
async def list_rules(request: Request, species: Optional[str] = None, user=Depends(verify_token)):
    registry = get_registry(request)
    rules = registry.rules_for(species) if species else registry.all_rules()
    return [r.model_dump(mode="json") for r in rules]
