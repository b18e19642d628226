"""REST API routes for the verifier."""

from __future__ import annotations

from typing import Callable

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, ValidationError

from verifier.api.auth import require_api_auth
from verifier.api.service import VerificationService
from verifier.pipeline.records import ProductQuery, VerificationResult

router = APIRouter()

_service_factory: Callable[[], VerificationService] = VerificationService


class VerifyRequest(BaseModel):
    """Product to verify, with an optional barcode-database ingredient text."""

    barcode: str = ""
    brand: str = ""
    name: str
    database_ingredients: str | None = None


@router.post("/verify", response_model=VerificationResult)
async def verify_product(
    request: VerifyRequest, _: str = Depends(require_api_auth)
) -> VerificationResult:
    """Run one verification to completion and return its result.

    Insufficient evidence is not an error: the result carries
    ``requires_manual_entry`` and the termination reason.
    """
    try:
        query = ProductQuery(barcode=request.barcode, brand=request.brand, name=request.name)
    except ValidationError as exc:
        raise HTTPException(status_code=422, detail=str(exc)) from exc

    service = _service_factory()
    return await service.verify(query, request.database_ingredients)
