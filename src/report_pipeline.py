"""
HIV Resistance Report Service - Report Pipeline
=================================================
Composes the three report stages, strictly in sequence:

  1. ``accumulate``  - collapse the resistance history (sync)
  2. ``analyze_mutations`` - one Sierra call (the only await)
  3. ``enrich``      - semaphore + active treatment annotation (sync)

No state is kept between calls, so reports for different patients (or
repeated reports for the same one) can run concurrently.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from src.accumulator import accumulate
from src.metrics import record_scoring_call, track_stage
from src.models import PatientRecord
from src.semaphore import DEFAULT_SEMAPHORE_CONFIG, SemaphoreConfig, enrich
from src.utils.sierra_client import scoring_error

logger = logging.getLogger(__name__)


async def run_full_analysis(
    resistance_history: Any,
    treatment_history: Any,
    client: Any,
    config: SemaphoreConfig = DEFAULT_SEMAPHORE_CONFIG,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Produce the enriched Sierra payload for one patient.

    Args:
        resistance_history: Raw resistance-test history.
        treatment_history: Raw treatment history; None counts as empty.
        client: Object exposing ``async analyze_mutations(accumulated,
            timeout=None)``, normally a ``SierraClient``.
        config: Semaphore classification table.
        timeout: Optional deadline (seconds) for the scoring call. When it
            expires the in-flight request is cancelled and an error value
            is returned.

    Returns:
        The enriched payload, or ``{"error": True, "message": ...}`` when
        the scoring call failed.
    """
    with track_stage("accumulate"):
        result = accumulate(resistance_history)

    with track_stage("score"):
        call = client.analyze_mutations(result.accumulated, timeout=timeout)
        if timeout is None:
            payload = await call
        else:
            try:
                payload = await asyncio.wait_for(call, timeout)
            except asyncio.TimeoutError:
                logger.error("Scoring call exceeded %.1fs deadline", timeout)
                record_scoring_call("timeout", timeout)
                payload = scoring_error(
                    f"Scoring service did not answer within {timeout}s"
                )

    if isinstance(payload, dict) and payload.get("error"):
        logger.warning("Report aborted: %s", payload.get("message"))
        return payload

    with track_stage("enrich"):
        return enrich(payload, treatment_history or [], config)


async def build_patient_report(
    patient: PatientRecord,
    client: Any,
    config: SemaphoreConfig = DEFAULT_SEMAPHORE_CONFIG,
    timeout: Optional[float] = None,
) -> Dict[str, Any]:
    """Run the pipeline on a loaded ``PatientRecord``."""
    return await run_full_analysis(
        patient.resistance_history,
        patient.treatment_history,
        client,
        config=config,
        timeout=timeout,
    )
