"""
HIV Resistance Report Service - Treatment Semaphore Enricher
==============================================================
Annotates every drug-resistance level in a Sierra payload with a
traffic-light classification and with evidence of whether the drug is
part of the patient's currently active antiretroviral regimen.

Level rows are annotated in place; none are added or removed. Rows or
blocks that are not shaped as expected are skipped without error.
"""

import logging
from dataclasses import dataclass, field
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Set, Tuple

from pydantic import ValidationError

from src.models import DisplayStatus, Semaphore, TreatmentRecord

logger = logging.getLogger(__name__)


# ═══════════════════════════════════════════════════════════════════════════
#  Configuration
# ═══════════════════════════════════════════════════════════════════════════

_DEFAULT_LEVELS = {
    "Susceptible": Semaphore.GREEN,
    "No Resistance": Semaphore.GREEN,
    "Low-Level Resistance": Semaphore.BLUE,
    "Potential Low-Level Resistance": Semaphore.BLUE,
    "Intermediate-Level Resistance": Semaphore.YELLOW,
    "High-Level Resistance": Semaphore.RED,
}

_DEFAULT_COLORS = {
    Semaphore.GREEN: "#28a745",
    Semaphore.BLUE: "#0d6efd",
    Semaphore.YELLOW: "#ffc107",
    Semaphore.RED: "#dc3545",
    Semaphore.GRAY: "#6c757d",
}


@dataclass(frozen=True)
class SemaphoreConfig:
    """Immutable classification table handed to ``enrich`` at call time.

    Attributes:
        levels: Sierra resistance text -> semaphore.
        colors: Semaphore -> display colour.
        default: Semaphore for unknown or missing text.
        boost_suffixes: Booster suffixes stripped from ``displayAbbr``
            when the exact abbreviation is not in the active regimen.
    """
    levels: Mapping[str, Semaphore] = field(
        default_factory=lambda: MappingProxyType(dict(_DEFAULT_LEVELS))
    )
    colors: Mapping[Semaphore, str] = field(
        default_factory=lambda: MappingProxyType(dict(_DEFAULT_COLORS))
    )
    default: Semaphore = Semaphore.GRAY
    boost_suffixes: Tuple[str, ...] = ("/R", "/C")

    def __post_init__(self):
        # Mappings are held as read-only copies; suffixes are upper-case.
        object.__setattr__(self, "levels", MappingProxyType(dict(self.levels)))
        object.__setattr__(self, "colors", MappingProxyType(dict(self.colors)))
        object.__setattr__(self, "boost_suffixes",
                           tuple(s.upper() for s in self.boost_suffixes))

    def classify(self, text: Any) -> Semaphore:
        if not isinstance(text, str):
            return self.default
        return self.levels.get(text.strip(), self.default)

    def color_for(self, semaphore: Semaphore) -> str:
        return self.colors.get(semaphore, self.colors.get(self.default, ""))


DEFAULT_SEMAPHORE_CONFIG = SemaphoreConfig()


# ═══════════════════════════════════════════════════════════════════════════
#  Active-drug index
# ═══════════════════════════════════════════════════════════════════════════


def _coerce_treatment(entry: Any) -> Optional[TreatmentRecord]:
    if isinstance(entry, TreatmentRecord):
        return entry
    if not isinstance(entry, dict):
        return None
    try:
        return TreatmentRecord.model_validate(entry)
    except ValidationError as exc:
        logger.warning("Ignoring malformed treatment record: %s", exc)
        return None


def build_active_drug_index(treatments: Iterable[Any]) -> Dict[str, Set[str]]:
    """Map each active drug token to the brand names prescribing it.

    ``DRV+COBI`` sold as REZOLSTA yields ``{"DRV": {"REZOLSTA"},
    "COBI": {"REZOLSTA"}}``. Brands accumulate across every active
    treatment sharing a token. ``info.text`` stands in for a missing brand.
    """
    index: Dict[str, Set[str]] = {}
    if not isinstance(treatments, (list, tuple)):
        return index
    for entry in treatments:
        treatment = _coerce_treatment(entry)
        if treatment is None or not treatment.is_active:
            continue

        brand = treatment.info.brand.strip() or treatment.info.text.strip()
        for raw_token in treatment.info.targa_short.split("+"):
            token = raw_token.strip().upper()
            if not token:
                continue
            brands = index.setdefault(token, set())
            if brand:
                brands.add(brand)
    return index


def match_active_drug(
    display_abbr: Any,
    index: Mapping[str, Set[str]],
    config: SemaphoreConfig = DEFAULT_SEMAPHORE_CONFIG,
) -> Optional[str]:
    """Return the index key matching a Sierra ``displayAbbr``, if any.

    Exact (case-insensitive) match wins; otherwise one trailing booster
    suffix (``/R`` or ``/C``) is stripped and the lookup repeated.
    """
    if not isinstance(display_abbr, str):
        return None
    abbr = display_abbr.strip().upper()
    if not abbr:
        return None
    if abbr in index:
        return abbr
    for suffix in config.boost_suffixes:
        if abbr.endswith(suffix):
            base = abbr[: -len(suffix)].strip()
            if base in index:
                return base
    return None


# ═══════════════════════════════════════════════════════════════════════════
#  Enrichment
# ═══════════════════════════════════════════════════════════════════════════


def iter_resistance_levels(payload: Any) -> Iterable[Dict[str, Any]]:
    """Yield every level dict under ``data.mutationsAnalysis.drugResistance``."""
    if not isinstance(payload, dict):
        return
    data = payload.get("data")
    analysis = data.get("mutationsAnalysis") if isinstance(data, dict) else None
    blocks = analysis.get("drugResistance") if isinstance(analysis, dict) else None
    if not isinstance(blocks, list):
        return
    for block in blocks:
        levels = block.get("levels") if isinstance(block, dict) else None
        if not isinstance(levels, list):
            continue
        for level in levels:
            if isinstance(level, dict):
                yield level


def annotate_level(
    level: Dict[str, Any],
    index: Mapping[str, Set[str]],
    config: SemaphoreConfig = DEFAULT_SEMAPHORE_CONFIG,
) -> Dict[str, Any]:
    """Add semaphore and active-treatment fields to one level row."""
    semaphore = config.classify(level.get("text"))
    level["semaphore_name"] = semaphore.value
    level["semaphore_color"] = config.color_for(semaphore)

    drug = level.get("drug")
    key = match_active_drug(
        drug.get("displayAbbr") if isinstance(drug, dict) else None,
        index,
        config,
    )
    if key is not None:
        level["is_active_treatment"] = True
        level["display_status"] = DisplayStatus.PRESCRIBED.value
        level["matched_brands"] = sorted(index[key])
    else:
        level["is_active_treatment"] = False
        level["display_status"] = DisplayStatus.INACTIVE.value
        level["matched_brands"] = []
    return level


def enrich(
    payload: Any,
    treatments: Any,
    config: SemaphoreConfig = DEFAULT_SEMAPHORE_CONFIG,
) -> Any:
    """Annotate a Sierra payload against the patient's treatment history.

    Args:
        payload: Parsed Sierra response (mutated in place).
        treatments: Treatment history; raw dicts or ``TreatmentRecord``.
        config: Classification table and booster suffixes.

    Returns:
        The same ``payload`` object. It is returned untouched when it is
        empty, carries ``error``, or when ``treatments`` is None.
    """
    if not payload or treatments is None:
        logger.debug("Enrichment skipped: missing payload or treatments")
        return payload
    if isinstance(payload, dict) and payload.get("error"):
        logger.info("Enrichment skipped: scoring payload carries an error")
        return payload

    index = build_active_drug_index(treatments)
    levels = 0
    prescribed = 0
    for level in iter_resistance_levels(payload):
        annotate_level(level, index, config)
        levels += 1
        prescribed += level["is_active_treatment"]

    logger.info("Enriched %d levels (%d prescribed) against %d active drugs",
                levels, prescribed, len(index))
    return payload
