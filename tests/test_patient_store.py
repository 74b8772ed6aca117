"""
Tests for the patient store.
==============================
Validates loading of patient_<id>.json files and the accent-insensitive
patient summary search.
"""

import json
import sys
from pathlib import Path

import pytest

_AGENT_ROOT = Path(__file__).resolve().parents[1]
if str(_AGENT_ROOT) not in sys.path:
    sys.path.insert(0, str(_AGENT_ROOT))

from src.models import PatientRecord
from src.patient_store import CASE_TYPE_MAP, PatientStore, normalize_text


@pytest.fixture
def store(patient_dir):
    return PatientStore(patient_dir=patient_dir)


def _ids(entries):
    return [entry["patient_id"] for entry in entries]


class TestNormalizeText:
    """Test accent-insensitive normalisation."""

    def test_strips_accents_and_upper_cases(self):
        assert normalize_text("  Lucía Fernández ") == "LUCIA FERNANDEZ"

    def test_none(self):
        assert normalize_text(None) == ""


class TestLoad:
    """Test PatientStore.load()."""

    def test_existing_patient(self, store):
        patient = store.load("76")
        assert isinstance(patient, PatientRecord)
        assert patient.pat_data["mrn"] == "76"
        assert len(patient.resistance_history) == 3
        assert len(patient.treatment_history) == 2

    def test_missing_patient(self, store):
        assert store.load("404") is None

    @pytest.mark.parametrize("patient_id", ["", "../76", "7 6", None])
    def test_unusable_identifier(self, store, patient_id):
        assert store.load(patient_id) is None

    def test_partial_record_gets_defaults(self, store):
        patient = store.load("12")
        assert patient.resistance_history == []
        assert patient.treatment_history == []

    def test_broken_json_raises(self, store):
        with pytest.raises(ValueError):
            store.load("99")

    def test_non_object_raises(self, patient_dir, store):
        (patient_dir / "patient_5.json").write_text(json.dumps([1, 2]), encoding="utf-8")
        with pytest.raises(ValueError, match="does not hold an object"):
            store.load("5")

    def test_patient_path(self, store, patient_dir):
        assert store.patient_path("76") == patient_dir / "patient_76.json"


class TestSearch:
    """Test PatientStore.search()."""

    def test_no_filters_returns_all(self, store):
        assert _ids(store.search()) == ["76", "12", "101"]

    def test_accent_insensitive_name(self, store):
        assert _ids(store.search("lucia")) == ["76"]
        assert _ids(store.search("JOSÉ")) == ["12"]

    def test_id_substring(self, store):
        assert _ids(store.search("1")) == ["12", "101"]

    def test_case_type_filter(self, store):
        assert _ids(store.search(case_type="Complex_High")) == ["76"]
        assert _ids(store.search(case_type="Complex_Failure")) == ["101"]

    def test_term_and_case_type(self, store):
        assert _ids(store.search("1", case_type="Basal_Low")) == ["12"]

    def test_unknown_case_type_not_applied(self, store):
        assert len(store.search(case_type="Nope")) == 3

    def test_no_match(self, store):
        assert store.search("zzz") == []

    def test_missing_summary(self, tmp_path):
        assert PatientStore(patient_dir=tmp_path / "empty").search("x") == []

    def test_broken_summary(self, patient_dir, store):
        (patient_dir / "patient-summary.json").write_text("[", encoding="utf-8")
        assert store.load_summary() == []

    def test_case_type_map_labels(self):
        assert CASE_TYPE_MAP["Complex_Failure"] == "Caso Complejo Fallo TARGA"
        assert len(CASE_TYPE_MAP) == 5
