#!/usr/bin/env python3
"""Generate the enriched HIV resistance report for one patient.

Loads a patient either by id from the configured patient directory or
from an explicit JSON file, runs accumulate -> Sierra -> semaphore and
writes the enriched payload as JSON.

Usage:
    python3 scripts/run_report.py --patient-id 76
    python3 scripts/run_report.py --file data/patients/patient_76.json -o report.json
    python3 scripts/run_report.py --patient-id 76 --history
"""

import argparse
import asyncio
import json
import logging
import sys
from pathlib import Path

PROJECT_ROOT = Path(__file__).resolve().parent.parent
sys.path.insert(0, str(PROJECT_ROOT))

from config.settings import settings
from src.accumulator import accumulate
from src.history import build_history_table
from src.models import PatientRecord
from src.patient_store import PatientStore
from src.report_pipeline import build_patient_report
from src.utils.sierra_client import SierraClient

logger = logging.getLogger("run_report")


def parse_args(argv=None):
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[0])
    source = parser.add_mutually_exclusive_group(required=True)
    source.add_argument("--patient-id", help="Identifier of patient_<id>.json")
    source.add_argument("--file", type=Path, help="Path to a patient JSON file")
    parser.add_argument("--patient-dir", type=Path, default=settings.PATIENT_DIR,
                        help="Directory holding patient_<id>.json files")
    parser.add_argument("--sierra-url", default=settings.SIERRA_URL,
                        help="Sierra GraphQL endpoint")
    parser.add_argument("--timeout", type=float, default=settings.REPORT_TIMEOUT,
                        help="Deadline in seconds for the Sierra call")
    parser.add_argument("--history", action="store_true",
                        help="Print the history table instead of calling Sierra")
    parser.add_argument("-o", "--output", type=Path,
                        help="Write JSON here instead of stdout")
    parser.add_argument("-v", "--verbose", action="store_true")
    return parser.parse_args(argv)


def load_patient(args):
    if args.file:
        with open(args.file, "r", encoding="utf-8") as f:
            return PatientRecord.model_validate(json.load(f))
    return PatientStore(patient_dir=args.patient_dir).load(args.patient_id)


async def generate(args, patient: PatientRecord):
    if args.history:
        result = accumulate(patient.resistance_history)
        return {
            "accumulated_mutations": result.accumulated.to_dict(),
            "history": build_history_table(result),
        }

    client = SierraClient(url=args.sierra_url)
    try:
        return await build_patient_report(patient, client, timeout=args.timeout)
    finally:
        await client.aclose()


def main(argv=None):
    args = parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else settings.LOG_LEVEL,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    patient = load_patient(args)
    if patient is None:
        print(f"ERROR: Patient {args.patient_id} not found in {args.patient_dir}")
        return 1

    report = asyncio.run(generate(args, patient))
    text = json.dumps(report, indent=2, ensure_ascii=False)

    if args.output:
        args.output.write_text(text, encoding="utf-8")
        print(f"Report written to {args.output}")
    else:
        print(text)

    if isinstance(report, dict) and report.get("error"):
        return 2
    return 0


if __name__ == "__main__":
    sys.exit(main())
