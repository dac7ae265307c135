# routes/public.py

import io

import qrcode
from fastapi import APIRouter, Request, Response

from herbchain.deps import get_builder

router = APIRouter(prefix="/api/public", tags=["public"])


def _consumer_summary(provenance) -> dict:
    """Flat view for the consumer scan page."""
    custody = provenance.chain_of_custody
    return {
        "productName": provenance.final_product.product_name,
        "batchId": provenance.batch_id,
        "manufacturerId": provenance.final_product.manufacturer_id,
        "expiryDate": provenance.final_product.expiry_date.isoformat(),
        "harvestedAt": custody[0].timestamp.isoformat() if custody else None,
        "stages": [step.action for step in custody],
        "certificates": [proof.certificate_id for proof in provenance.sustainability_proofs],
    }


@router.get("/provenance/{batch_id}")
async def public_provenance(batch_id: str, request: Request):
    provenance = await get_builder(request).find_by_batch(batch_id)
    return provenance.model_dump(mode="json")


@router.get("/scan/{code}")
async def public_consumer_scan(code: str, request: Request):
    """
    Public, unauthenticated lookup by the code printed on the product.

    Signed codes are verified against their signature; legacy QR_ codes
    resolve by batch id and are flagged as unverified.
    """
    lookup = await get_builder(request).find_by_product_identifier(code)
    return {
        "verified": lookup.verified,
        "codeFormat": lookup.code_format,
        "summary": _consumer_summary(lookup.provenance),
        "provenance": lookup.provenance.model_dump(mode="json"),
    }


@router.get("/provenance/{batch_id}/qrcode")
async def provenance_qrcode(batch_id: str, request: Request):
    provenance = await get_builder(request).find_by_batch(batch_id)
    base_url = request.app.state.config.BASE_URL
    img = qrcode.make(f"{base_url}/api/public/scan/{provenance.final_product.product_code}")
    buf = io.BytesIO()
    img.save(buf, format="PNG")
    return Response(content=buf.getvalue(), media_type="image/png")
