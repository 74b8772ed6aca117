"""
HIV Resistance Report Service - Pydantic Models
=================================================
Domain models for resistance test history, treatment history,
accumulated mutation sets and patient records.

Input records arrive as loosely structured JSON, so every field carries
an explicit default and a ``mode="before"`` validator that maps missing
or wrongly typed values onto that default.
"""

from datetime import date, datetime
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, field_validator


# ═══════════════════════════════════════════════════════════════════════════
#  Enums
# ═══════════════════════════════════════════════════════════════════════════


class Gene(str, Enum):
    """Viral genes tracked for resistance mutations, in wire order."""
    PR = "pr"   # protease
    RT = "rt"   # reverse transcriptase
    IN = "in"   # integrase

    @property
    def tag(self) -> str:
        """Prefix used by the scoring service, e.g. ``RT:``."""
        return f"{self.name}:"


class Semaphore(str, Enum):
    """Traffic-light classification of a resistance level."""
    GREEN = "GREEN"
    BLUE = "BLUE"
    YELLOW = "YELLOW"
    RED = "RED"
    GRAY = "GRAY"


class DisplayStatus(str, Enum):
    """Whether a scored drug is part of the current regimen."""
    PRESCRIBED = "PRESCRIBED"
    INACTIVE = "INACTIVE"


# ═══════════════════════════════════════════════════════════════════════════
#  Helpers
# ═══════════════════════════════════════════════════════════════════════════

_DATE_FORMATS = ("%d/%m/%Y", "%d-%m-%Y")


def parse_date(value: Any) -> Optional[date]:
    """Parse an ISO (or day-first) date; ``None`` and ``""`` mean no date.

    Raises:
        ValueError: if ``value`` is present but cannot be read as a date.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if not isinstance(value, str):
        raise ValueError(f"Unsupported date value: {value!r}")

    text = value.strip()
    if not text:
        return None
    try:
        return date.fromisoformat(text[:10])
    except ValueError:
        pass
    for fmt in _DATE_FORMATS:
        try:
            return datetime.strptime(text, fmt).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date: {value!r}")


_FALSE_STRINGS = frozenset({"", "false", "0", "no", "n", "off"})


def _as_text(value: Any) -> str:
    if value is None:
        return ""
    return str(value)


def _as_identifier(value: Any) -> Optional[Union[int, str]]:
    # Identifiers are descriptive; other types must not reject the record.
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, str)):
        return value
    return None


def _as_flag(value: Any) -> bool:
    if isinstance(value, str):
        return value.strip().lower() not in _FALSE_STRINGS
    return bool(value)


def _lenient_date(value: Any) -> Optional[date]:
    try:
        return parse_date(value)
    except ValueError:
        return None


# ═══════════════════════════════════════════════════════════════════════════
#  Domain Models
# ═══════════════════════════════════════════════════════════════════════════


class GeneMutations(BaseModel):
    """Mutation codes per gene (``pr``, ``rt``, ``in``).

    Used both for the codes of a single test and for the accumulated set.
    ``in`` is a Python keyword, so the field is ``in_`` with alias ``in``.
    """
    model_config = ConfigDict(populate_by_name=True)

    pr: List[str] = Field(default_factory=list)
    rt: List[str] = Field(default_factory=list)
    in_: List[str] = Field(default_factory=list, alias="in")

    @field_validator("pr", "rt", "in_", mode="before")
    @classmethod
    def _clean_codes(cls, value: Any) -> List[str]:
        if not isinstance(value, (list, tuple)):
            return []
        return [code for code in value if isinstance(code, str) and code]

    def codes(self, gene: Gene) -> List[str]:
        if gene is Gene.IN:
            return self.in_
        return getattr(self, gene.value)

    def total(self) -> int:
        return len(self.pr) + len(self.rt) + len(self.in_)

    def to_dict(self) -> Dict[str, List[str]]:
        return {gene.value: list(self.codes(gene)) for gene in Gene}


class ResistanceTestRecord(BaseModel):
    """One historical genotypic resistance test."""
    model_config = ConfigDict(extra="allow")

    resistance_id: Optional[Union[int, str]] = None
    test_date: Optional[date] = None
    test_type: str = ""
    mutations: GeneMutations = Field(default_factory=GeneMutations)
    has_mutation: bool = False

    @field_validator("resistance_id", mode="before")
    @classmethod
    def _resistance_id(cls, value: Any) -> Optional[Union[int, str]]:
        return _as_identifier(value)

    @field_validator("test_date", mode="before")
    @classmethod
    def _test_date(cls, value: Any) -> Optional[date]:
        # The test date is descriptive only; an unreadable one is dropped.
        return _lenient_date(value)

    @field_validator("test_type", mode="before")
    @classmethod
    def _test_type(cls, value: Any) -> str:
        return _as_text(value)

    @field_validator("mutations", mode="before")
    @classmethod
    def _mutations(cls, value: Any) -> Any:
        if isinstance(value, (dict, GeneMutations)):
            return value
        return {}

    @field_validator("has_mutation", mode="before")
    @classmethod
    def _has_mutation(cls, value: Any) -> bool:
        return _as_flag(value)


class AccumulationResult(BaseModel):
    """Normalised history plus the deduplicated, codon-ordered union."""
    history: List[ResistanceTestRecord] = Field(default_factory=list)
    accumulated: GeneMutations = Field(default_factory=GeneMutations)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "history": [
                record.model_dump(mode="json", by_alias=True)
                for record in self.history
            ],
            "accumulated_mutations": self.accumulated.to_dict(),
        }


class TreatmentInfo(BaseModel):
    """Drug presentation attached to a treatment line."""
    targa_short: str = ""
    brand: str = ""
    text: str = ""

    @field_validator("targa_short", "brand", "text", mode="before")
    @classmethod
    def _text_fields(cls, value: Any) -> str:
        return _as_text(value)


class TreatmentRecord(BaseModel):
    """One antiretroviral treatment line; no end date means it is active."""
    drug_id: Optional[Union[int, str]] = None
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    info: TreatmentInfo = Field(default_factory=TreatmentInfo)

    @field_validator("drug_id", mode="before")
    @classmethod
    def _drug_id(cls, value: Any) -> Optional[Union[int, str]]:
        return _as_identifier(value)

    @field_validator("start_date", mode="before")
    @classmethod
    def _start_date(cls, value: Any) -> Optional[date]:
        return _lenient_date(value)

    @field_validator("end_date", mode="before")
    @classmethod
    def _end_date(cls, value: Any) -> Optional[date]:
        # Only end_date decides activity, so an unreadable one rejects the line.
        return parse_date(value)

    @field_validator("info", mode="before")
    @classmethod
    def _info(cls, value: Any) -> Any:
        if isinstance(value, (dict, TreatmentInfo)):
            return value
        return {}

    @property
    def is_active(self) -> bool:
        return self.end_date is None


class PatientRecord(BaseModel):
    """Per-patient inbound data contract."""
    pat_data: Dict[str, Any] = Field(default_factory=dict)
    resistance_history: List[Any] = Field(default_factory=list)
    treatment_history: List[Any] = Field(default_factory=list)

    @field_validator("pat_data", mode="before")
    @classmethod
    def _pat_data(cls, value: Any) -> Dict[str, Any]:
        return value if isinstance(value, dict) else {}

    @field_validator("resistance_history", "treatment_history", mode="before")
    @classmethod
    def _history(cls, value: Any) -> List[Any]:
        return list(value) if isinstance(value, (list, tuple)) else []
