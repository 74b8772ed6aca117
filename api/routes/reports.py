"""
HIV Resistance Report Service - Report Router
===============================================
Generate the enriched resistance report, and the mutation-evolution
history table, for one patient.
"""

import logging
import time
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query

from src.accumulator import accumulate
from src.history import build_history_table
from src.metrics import record_report_request
from src.models import PatientRecord
from src.report_pipeline import build_patient_report

logger = logging.getLogger(__name__)

router = APIRouter(tags=["reports"])


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------
def _load_patient(state: Dict[str, Any], pat_id: Optional[str]) -> PatientRecord:
    if not pat_id:
        raise HTTPException(status_code=400, detail="Missing pat_id query parameter")

    store = state.get("patient_store")
    if store is None:
        raise HTTPException(status_code=500, detail="Patient store not initialised")

    try:
        patient = store.load(pat_id)
    except Exception as exc:
        logger.error("Failed to load patient %s: %s", pat_id, exc, exc_info=True)
        raise HTTPException(status_code=500, detail=str(exc))

    if patient is None:
        raise HTTPException(status_code=404, detail=f"Patient {pat_id} not found")
    return patient


# ---------------------------------------------------------------------------
# Endpoints
# ---------------------------------------------------------------------------
@router.get("/api/hiv-report")
async def hiv_report(pat_id: Optional[str] = Query(default=None)):
    """Full report: accumulated mutations scored by Sierra with TARGA semaphore.

    A failed Sierra call is returned as ``{"error": true, "message"}``
    with status 200; callers check the ``error`` field.
    """
    from api.main import get_state

    state = get_state()
    status = 500
    try:
        patient = _load_patient(state, pat_id)

        client = state.get("sierra_client")
        if client is None:
            raise HTTPException(status_code=500, detail="Sierra client not initialised")

        settings = state.get("settings")
        t0 = time.time()
        try:
            result = await build_patient_report(
                patient,
                client,
                config=state["semaphore_config"],
                timeout=settings.REPORT_TIMEOUT if settings else None,
            )
        except Exception as exc:
            logger.error("Report generation failed for %s: %s", pat_id, exc, exc_info=True)
            raise HTTPException(status_code=500, detail=str(exc) or "Internal server error")

        elapsed_ms = round((time.time() - t0) * 1000, 1)
        logger.info("Report for patient %s generated in %.1f ms", pat_id, elapsed_ms)
        status = 200
        return result
    except HTTPException as exc:
        status = exc.status_code
        raise
    finally:
        record_report_request(status)


@router.get("/api/hiv-report/history")
async def hiv_report_history(pat_id: Optional[str] = Query(default=None)):
    """Resistance-test history table with the accumulated row first."""
    from api.main import get_state

    patient = _load_patient(get_state(), pat_id)
    result = accumulate(patient.resistance_history)
    rows = build_history_table(result)
    return {
        "patient_id": pat_id,
        "accumulated_mutations": result.accumulated.to_dict(),
        "history": rows,
        "count": len(rows) - 1,
    }
