import argparse
import os
import sys

sys.path.insert(0, os.path.join(os.path.dirname(__file__), ".."))

import settings
from drafts import cleanup_old_drafts
from survey_db import ensure_db


def main():
    parser = argparse.ArgumentParser(description="Delete drafts that have not been saved for a while.")
    parser.add_argument("--days", type=int, default=settings.DRAFT_MAX_AGE_DAYS)
    args = parser.parse_args()

    ensure_db()
    removed = cleanup_old_drafts(args.days)
    if removed:
        print(f"Removed {removed} drafts older than {args.days} days")
    else:
        print("No stale drafts found.")


if __name__ == "__main__":
    main()
