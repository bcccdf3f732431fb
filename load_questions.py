# load_questions.py
import argparse
import json
import os

import settings
from questions import question_from_dict
from survey_db import ensure_db, upsert_question


def load_file(path: str) -> int:
    """Upsert every question in a questionnaire JSON file; returns the count."""
    with open(path, "r", encoding="utf-8") as f:
        data = json.load(f)

    questionnaires = data if isinstance(data, list) else [data]
    created = 0
    for qn in questionnaires:
        qn_id = str(qn.get("questionnaire_id") or "")
        for raw in qn.get("questions", []) or []:
            upsert_question(question_from_dict(raw, qn_id))
            created += 1
    return created


def main():
    parser = argparse.ArgumentParser(description="Seed the questions table from a JSON file.")
    parser.add_argument("path", nargs="?", default=settings.QUESTIONS_PATH)
    args = parser.parse_args()

    if not os.path.exists(args.path):
        raise SystemExit(f"No questions file found at {args.path}")

    ensure_db()
    created = load_file(args.path)
    print(f"Loaded {created} questions into {settings.DB_PATH}")
    print("Start the API with: uvicorn app:app --reload")


if __name__ == "__main__":
    main()
