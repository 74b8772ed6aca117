"""
HIV Resistance Report Service - Patient Store
===============================================
Read-only access to the synthetic patient files on disk:

- ``patient_<id>.json`` holds ``pat_data``, ``resistance_history`` and
  ``treatment_history`` for one patient.
- The summary file lists every patient with ``patient_id``,
  ``full_name`` and ``case_type`` and backs the patient search.
"""

import json
import logging
import re
import unicodedata
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

from pydantic import ValidationError

from config.settings import settings
from src.models import PatientRecord

logger = logging.getLogger(__name__)

# Filter code -> case_type label used in the summary file.
CASE_TYPE_MAP = {
    "Basal_Low": "Caso Basal <=3mut",
    "Basal_High": "Caso Basal >3mut",
    "Complex_Low": "Caso Complejo <=3mut",
    "Complex_High": "Caso Complejo >3mut",
    "Complex_Failure": "Caso Complejo Fallo TARGA",
}

_PATIENT_ID_RE = re.compile(r"^[A-Za-z0-9_-]+$")


def normalize_text(value: Any) -> str:
    """Accent-insensitive, upper-case, trimmed form used for name search."""
    decomposed = unicodedata.normalize("NFD", "" if value is None else str(value))
    stripped = "".join(ch for ch in decomposed if not unicodedata.combining(ch))
    return stripped.upper().strip()


class PatientStore:
    """Loads patient records and searches the patient summary.

    Args:
        patient_dir: Directory containing ``patient_<id>.json`` files.
        summary_file: Summary file name inside ``patient_dir``.
    """

    def __init__(
        self,
        patient_dir: Optional[Union[str, Path]] = None,
        summary_file: Optional[str] = None,
    ):
        self.patient_dir = Path(patient_dir or settings.PATIENT_DIR)
        self.summary_path = self.patient_dir / (summary_file or settings.PATIENT_SUMMARY_FILE)

    # ------------------------------------------------------------------
    # Patient records
    # ------------------------------------------------------------------

    def patient_path(self, patient_id: str) -> Optional[Path]:
        """Path of a patient's file, or None for an unusable identifier."""
        if not isinstance(patient_id, str) or not _PATIENT_ID_RE.match(patient_id):
            return None
        return self.patient_dir / f"patient_{patient_id}.json"

    def load(self, patient_id: str) -> Optional[PatientRecord]:
        """Return the patient's record, or None if no such file exists.

        Raises:
            ValueError: if the file exists but is not valid JSON or not a
                patient object.
        """
        path = self.patient_path(patient_id)
        if path is None or not path.is_file():
            logger.info("Patient %r not found in %s", patient_id, self.patient_dir)
            return None

        with open(path, "r", encoding="utf-8") as f:
            raw = json.load(f)
        if not isinstance(raw, dict):
            raise ValueError(f"Patient file {path.name} does not hold an object")
        try:
            return PatientRecord.model_validate(raw)
        except ValidationError as exc:
            raise ValueError(f"Patient file {path.name} is malformed: {exc}") from exc

    # ------------------------------------------------------------------
    # Summary search
    # ------------------------------------------------------------------

    def load_summary(self) -> List[Dict[str, Any]]:
        """Return the summary entries, or an empty list if unavailable."""
        if not self.summary_path.is_file():
            logger.warning("Patient summary not found: %s", self.summary_path)
            return []
        try:
            with open(self.summary_path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (json.JSONDecodeError, OSError) as exc:
            logger.error("Failed to load patient summary: %s", exc)
            return []
        if not isinstance(data, list):
            logger.error("Unexpected patient summary format in %s", self.summary_path)
            return []
        return [entry for entry in data if isinstance(entry, dict)]

    def search(
        self,
        term: Optional[str] = None,
        case_type: Optional[str] = None,
    ) -> List[Dict[str, Any]]:
        """Filter summary entries by id/name term and case-type code.

        An empty term matches every entry of the selected case type.
        Unknown case-type codes apply no filter.
        """
        term = (term or "").strip()
        normalized_term = normalize_text(term)
        expected_case = CASE_TYPE_MAP.get(case_type) if case_type else None

        matches = []
        for entry in self.load_summary():
            if expected_case and entry.get("case_type") != expected_case:
                continue
            if term:
                id_match = term in str(entry.get("patient_id", ""))
                name_match = normalized_term in normalize_text(entry.get("full_name"))
                if not (id_match or name_match):
                    continue
            matches.append(entry)
        return matches
