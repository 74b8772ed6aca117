"""
HIV Resistance Report Service - Resistance History Table
==========================================================
Shapes an ``AccumulationResult`` into the rows of the mutation-evolution
table: a synthetic "accumulated" row first, then the real tests newest
first, each with codes sorted by codon and aligned against the
accumulated columns.
"""

import logging
from datetime import date
from typing import Any, Dict, List, Optional

from src.accumulator import sort_by_codon
from src.models import AccumulationResult, Gene, GeneMutations, ResistanceTestRecord

logger = logging.getLogger(__name__)

ACCUMULATED_ROW_ID = -1
ACCUMULATED_TEST_TYPE = "accumulated"


def align_to_accumulated(
    codes: List[str],
    accumulated: List[str],
) -> List[Optional[str]]:
    """One slot per accumulated code: the code if this test had it, else None."""
    present = set(codes)
    return [code if code in present else None for code in accumulated]


def _row(
    record: ResistanceTestRecord,
    accumulated: GeneMutations,
) -> Dict[str, Any]:
    row = record.model_dump(mode="json", by_alias=True)
    row["mutations"] = {
        gene.value: sort_by_codon(record.mutations.codes(gene)) for gene in Gene
    }
    row["aligned"] = {
        gene.value: align_to_accumulated(
            record.mutations.codes(gene), accumulated.codes(gene)
        )
        for gene in Gene
    }
    return row


def build_history_table(result: AccumulationResult) -> List[Dict[str, Any]]:
    """Return table rows: accumulated entry, then tests by date descending.

    Tests without a date sort after every dated test; equal dates keep
    their input order.
    """
    accumulated = result.accumulated
    accumulated_codes = accumulated.to_dict()
    rows: List[Dict[str, Any]] = [{
        "resistance_id": ACCUMULATED_ROW_ID,
        "test_date": None,
        "test_type": ACCUMULATED_TEST_TYPE,
        "mutations": accumulated_codes,
        "aligned": accumulated.to_dict(),
        "has_mutation": accumulated.total() > 0,
    }]

    dated = sorted(
        (r for r in result.history if r.test_date is not None),
        key=lambda r: r.test_date or date.min,
        reverse=True,
    )
    undated = [r for r in result.history if r.test_date is None]
    rows.extend(_row(record, accumulated) for record in dated + undated)

    logger.debug("History table built with %d test rows", len(rows) - 1)
    return rows
