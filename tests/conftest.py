"""
Shared pytest fixtures for the HIV Resistance Report test suite.
=================================================================
Provides sample resistance/treatment histories, a Sierra response
fixture, mock HTTP transports for the Sierra client and an on-disk
patient directory.
"""

import copy
import json
import sys
from pathlib import Path

import httpx
import pytest

# ---------------------------------------------------------------------------
# Ensure src is importable
# ---------------------------------------------------------------------------
_AGENT_ROOT = Path(__file__).resolve().parents[1]
if str(_AGENT_ROOT) not in sys.path:
    sys.path.insert(0, str(_AGENT_ROOT))

from src.utils.sierra_client import SierraClient


SIERRA_TEST_URL = "https://sierra.test/graphql"


# ═══════════════════════════════════════════════════════════════════════════
# Sample data
# ═══════════════════════════════════════════════════════════════════════════

SAMPLE_RESISTANCE_HISTORY = [
    {
        "resistance_id": 1,
        "test_date": "2022-01-01",
        "test_type": "genotypic",
        "mutations": {"pr": ["L10F"], "rt": ["K103N"], "in": []},
        "has_mutation": True,
    },
    {
        "resistance_id": 2,
        "test_date": "2023-06-15",
        "test_type": "genotypic",
        "mutations": {"pr": ["L10F"], "rt": ["M184V"], "in": ["T66I"]},
        "has_mutation": True,
    },
    {
        "resistance_id": 3,
        "test_date": "2024-01-10",
        "test_type": "genotypic",
        "mutations": {"pr": ["V32I"], "rt": [], "in": []},
        "has_mutation": False,
    },
]

SAMPLE_TREATMENT_HISTORY = [
    {
        "drug_id": 101,
        "start_date": "2015-02-01",
        "end_date": "2018-07-12",
        "info": {
            "text": "EFAVIRENZ/ EMTRICITABINA/ TENOFOVIR DF",
            "targa_short": "EFV+FTC+TDF",
            "brand": "ATRIPLA",
        },
    },
    {
        "drug_id": 167,
        "start_date": "2018-07-13",
        "end_date": None,
        "end_reason": {"code": None, "description": None},
        "info": {
            "text": "DARUNAVIR/ COBICISTAT",
            "targa_short": "DRV+COBI",
            "brand": "REZOLSTA",
            "presentation": "800/150",
            "atc": "J05AR14",
        },
    },
]

SAMPLE_SIERRA_RESPONSE = {
    "data": {
        "mutationsAnalysis": {
            "validationResults": [],
            "drugResistance": [
                {
                    "gene": {
                        "name": "PR",
                        "drugClasses": [{"name": "PI", "fullName": "Protease Inhibitor"}],
                    },
                    "levels": [
                        {
                            "drugClass": {"name": "PI"},
                            "drug": {"name": "ATV", "displayAbbr": "ATV/r", "fullName": "atazanavir/r"},
                            "text": "High-Level Resistance",
                        },
                        {
                            "drugClass": {"name": "PI"},
                            "drug": {"name": "DRV", "displayAbbr": "DRV/r", "fullName": "darunavir/r"},
                            "text": "Susceptible",
                        },
                    ],
                    "drugScores": [
                        {"drug": {"name": "ATV", "displayAbbr": "ATV/r"}, "score": 145.0, "partialScores": []},
                        {"drug": {"name": "DRV", "displayAbbr": "DRV/r"}, "score": 15.0, "partialScores": []},
                    ],
                },
                {
                    "gene": {
                        "name": "RT",
                        "drugClasses": [{"name": "NNRTI", "fullName": "Non-nucleoside RTI"}],
                    },
                    "levels": [
                        {
                            "drugClass": {"name": "NNRTI"},
                            "drug": {"name": "EFV", "displayAbbr": "EFV", "fullName": "efavirenz"},
                            "text": "Intermediate-Level Resistance",
                        },
                        {
                            "drugClass": {"name": "NRTI"},
                            "drug": {"name": "FTC", "displayAbbr": "FTC", "fullName": "emtricitabine"},
                            "text": "Low-Level Resistance",
                        },
                    ],
                },
            ],
        }
    }
}


# ═══════════════════════════════════════════════════════════════════════════
# Fixtures
# ═══════════════════════════════════════════════════════════════════════════


@pytest.fixture
def resistance_history():
    """Three genotypic tests; the last one is flagged without mutations."""
    return copy.deepcopy(SAMPLE_RESISTANCE_HISTORY)


@pytest.fixture
def treatment_history():
    """One finished ATRIPLA line and one active REZOLSTA line."""
    return copy.deepcopy(SAMPLE_TREATMENT_HISTORY)


@pytest.fixture
def sierra_response():
    """Simplified Sierra mutationsAnalysis response (PR + RT blocks)."""
    return copy.deepcopy(SAMPLE_SIERRA_RESPONSE)


@pytest.fixture
def recording_transport():
    """Factory for an httpx.MockTransport that records every request.

    Usage: ``transport, requests = recording_transport(handler)``.
    """
    def _make(handler):
        requests = []

        def _record(request: httpx.Request):
            requests.append(request)
            return handler(request)

        return httpx.MockTransport(_record), requests

    return _make


@pytest.fixture
def make_sierra_client(recording_transport):
    """Build a SierraClient backed by a mock transport.

    Returns ``(client, requests)`` where ``requests`` lists every request
    the client sent.
    """
    def _make(handler):
        transport, requests = recording_transport(handler)
        http_client = httpx.AsyncClient(transport=transport)
        return SierraClient(url=SIERRA_TEST_URL, http_client=http_client), requests

    return _make


@pytest.fixture
def patient_dir(tmp_path, resistance_history, treatment_history):
    """Directory with patient_76.json, a broken patient file and a summary."""
    patient = {
        "pat_data": {"mrn": "76", "full_name": "Lucía Fernández Ortega"},
        "resistance_history": resistance_history,
        "treatment_history": treatment_history,
    }
    (tmp_path / "patient_76.json").write_text(json.dumps(patient), encoding="utf-8")
    (tmp_path / "patient_99.json").write_text("{not json", encoding="utf-8")
    (tmp_path / "patient_12.json").write_text(
        json.dumps({"pat_data": {"mrn": "12"}}), encoding="utf-8"
    )
    summary = [
        {"patient_id": "76", "full_name": "Lucía Fernández Ortega",
         "case_type": "Caso Complejo >3mut"},
        {"patient_id": "12", "full_name": "José Martín Ruiz",
         "case_type": "Caso Basal <=3mut"},
        {"patient_id": "101", "full_name": "Ana Belén Sáez",
         "case_type": "Caso Complejo Fallo TARGA"},
    ]
    (tmp_path / "patient-summary.json").write_text(
        json.dumps(summary, ensure_ascii=False), encoding="utf-8"
    )
    return tmp_path
