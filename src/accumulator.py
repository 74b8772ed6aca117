"""
HIV Resistance Report Service - Mutation Accumulator
======================================================
Collapses a patient's longitudinal resistance-test history into one
deduplicated mutation set per gene, ordered by codon number.

Every code present in a test is accumulated, whatever the test's
``has_mutation`` flag says; the flag is descriptive metadata only.
"""

import logging
import re
from typing import Any, Dict, Iterable, List, Optional

from pydantic import ValidationError

from src.models import AccumulationResult, Gene, GeneMutations, ResistanceTestRecord

logger = logging.getLogger(__name__)

_CODON_RE = re.compile(r"\d+")

# Sort key for codes without a codon number; keeps them after every real codon.
NO_CODON = float("inf")


def codon_number(code: str) -> float:
    """Return the first run of digits in ``code`` (``M41L`` -> 41)."""
    match = _CODON_RE.search(code or "")
    return int(match.group(0)) if match else NO_CODON


def sort_by_codon(codes: Iterable[str]) -> List[str]:
    """Order codes by codon number, codeless last, ties broken lexically."""
    return sorted(codes, key=lambda code: (codon_number(code), code))


def _coerce_record(entry: Any, position: int) -> Optional[ResistanceTestRecord]:
    if isinstance(entry, ResistanceTestRecord):
        return entry
    if not isinstance(entry, dict):
        logger.warning("Skipping resistance entry %d: not a mapping (%s)",
                       position, type(entry).__name__)
        return None
    try:
        return ResistanceTestRecord.model_validate(entry)
    except ValidationError as exc:
        logger.warning("Skipping malformed resistance entry %d: %s", position, exc)
        return None


def accumulate(history: Any) -> AccumulationResult:
    """Build the accumulated mutation set from a resistance-test history.

    Args:
        history: Sequence of resistance tests, either raw dicts as read
            from the patient record or ``ResistanceTestRecord`` instances.
            Anything that is not a list or tuple yields an empty result.

    Returns:
        AccumulationResult with the parsed history (in input order) and,
        for each of ``pr``/``rt``/``in``, the unique codes sorted by codon.
    """
    if not isinstance(history, (list, tuple)):
        logger.info("Resistance history is not a sequence (%s); using empty set",
                    type(history).__name__)
        return AccumulationResult()

    records: List[ResistanceTestRecord] = []
    seen: Dict[Gene, Dict[str, None]] = {gene: {} for gene in Gene}

    for position, entry in enumerate(history):
        record = _coerce_record(entry, position)
        if record is None:
            continue
        records.append(record)
        for gene in Gene:
            for code in record.mutations.codes(gene):
                seen[gene].setdefault(code, None)

    accumulated = GeneMutations(
        pr=sort_by_codon(seen[Gene.PR]),
        rt=sort_by_codon(seen[Gene.RT]),
        in_=sort_by_codon(seen[Gene.IN]),
    )
    logger.debug("Accumulated %d codes from %d tests",
                 accumulated.total(), len(records))
    return AccumulationResult(history=records, accumulated=accumulated)
