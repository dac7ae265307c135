# routes/events.py
"""
Submission endpoints for the supply-chain roles.

Rule violations come back as a 422 carrying the full validation result;
accepted events come back as a 201 with the ledger entry they produced.
"""

from fastapi import APIRouter, Depends, Request
from fastapi.responses import JSONResponse

from herbchain.deps import get_builder, get_service
from herbchain.models.events import CollectionEvent, ProcessingStep, QualityTest
from herbchain.models.ledger import SubmissionOutcome
from herbchain.models.provenance import ProvenanceRequest
from utils.jwt import require_role

router = APIRouter(prefix="/api", tags=["Events"])


def _outcome_response(outcome: SubmissionOutcome) -> JSONResponse:
    status = 201 if outcome.transaction is not None else 422
    return JSONResponse(status_code=status, content=outcome.model_dump(mode="json"))

# =====================================================
# 1️⃣ COLLECTOR
# =====================================================

@router.post("/collector/validate")
async def validate_collection(
    event: CollectionEvent, request: Request, user=Depends(require_role("Collector"))
):
    """Dry run against current rules and totals; nothing is recorded."""
    result = await get_service(request).validate_collection(event)
    return result.model_dump(mode="json")


@router.post("/collector/collection-events")
async def submit_collection_event(
    event: CollectionEvent, request: Request, user=Depends(require_role("Collector"))
):
    outcome = await get_service(request).submit_collection(event, user["id"])
    return _outcome_response(outcome)

# =====================================================
# 2️⃣ PROCESSOR
# =====================================================

@router.post("/processor/processing-steps", status_code=201)
async def submit_processing_step(
    step: ProcessingStep, request: Request, user=Depends(require_role("Processor", "Manufacturer"))
):
    entry = await get_service(request).submit_processing_step(step, user["id"])
    return entry.model_dump(mode="json")

# =====================================================
# 3️⃣ LAB
# =====================================================

@router.post("/lab/quality-tests")
async def submit_quality_test(
    test: QualityTest, request: Request, user=Depends(require_role("Tester"))
):
    outcome = await get_service(request).submit_quality_test(test, user["id"])
    return _outcome_response(outcome)

# =====================================================
# 4️⃣ MANUFACTURER
# =====================================================

@router.post("/manufacturer/provenance/{batch_id}", status_code=201)
async def build_provenance(
    batch_id: str,
    request: Request,
    body: ProvenanceRequest | None = None,
    user=Depends(require_role("Manufacturer", "Admin")),
):
    body = body or ProvenanceRequest()
    provenance = await get_builder(request).build(
        batch_id,
        product_name=body.product_name,
        manufacturer_id=body.manufacturer_id,
        batch_size=body.batch_size,
    )
    return provenance.model_dump(mode="json")
