"""
HIV Resistance Report Service - Patient Search Router
=======================================================
Search the synthetic patient summary by identifier, name or case type.
"""

import logging
from typing import Optional

from fastapi import APIRouter, HTTPException, Query

from src.patient_store import CASE_TYPE_MAP

logger = logging.getLogger(__name__)

router = APIRouter(tags=["patients"])


@router.get("/api/patients")
async def search_patients(
    q: Optional[str] = Query(default=None, description="Patient id or name fragment"),
    case_type: Optional[str] = Query(default=None, description="Case-type filter code"),
):
    """List summary entries matching ``q`` within the selected case type."""
    from api.main import get_state

    store = get_state().get("patient_store")
    if store is None:
        raise HTTPException(status_code=500, detail="Patient store not initialised")

    if case_type and case_type not in CASE_TYPE_MAP:
        raise HTTPException(
            status_code=400,
            detail=f"Unknown case_type {case_type!r}; expected one of {sorted(CASE_TYPE_MAP)}",
        )

    matches = store.search(term=q, case_type=case_type)
    return {"patients": matches, "count": len(matches)}
