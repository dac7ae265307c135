from fastapi import APIRouter, Body, Depends, HTTPException, Request
from pydantic import ValidationError

from herbchain.deps import get_ledger, get_registry, get_store
from herbchain.models.rules import parse_rule
from utils.jwt import require_role

# Base path for all Admin routes in this file
router = APIRouter(prefix="/api/admin", tags=["Admin"])

admin_only = require_role("Admin")


@router.get("/dashboard")
async def admin_dashboard(request: Request, user=Depends(admin_only)):
    registry = get_registry(request)
    ledger = get_ledger(request)
    rules = registry.all_rules()
    return {
        "kpis": {
            "ledgerHeight": await ledger.height(),
            "rules": len(rules),
            "activeRules": len([r for r in rules if r.active]),
            "species": registry.species(),
        },
        "latestHash": await ledger.latest_hash(),
    }


@router.post("/rules", status_code=201)
async def create_rule(request: Request, doc: dict = Body(...), user=Depends(admin_only)):
    try:
        rule = parse_rule(doc)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    # Saved first: a failed save leaves the live rule set untouched.
    await get_store(request).save_rule(rule.model_dump(mode="json"))
    get_registry(request).register(rule)
    return rule.model_dump(mode="json")


@router.put("/rules/{rule_id}")
async def update_rule(rule_id: str, request: Request, changes: dict = Body(...), user=Depends(admin_only)):
    """Partial edit, e.g. {"active": false} to retire a rule."""
    registry = get_registry(request)
    try:
        rule = registry.revise(rule_id, **changes)
    except ValidationError as e:
        raise HTTPException(status_code=422, detail=str(e))

    await get_store(request).save_rule(rule.model_dump(mode="json"))
    registry.register(rule)
    return rule.model_dump(mode="json")
