# scripts/init_database.py

"""
Database initialization script.
Creates all tables and, when given a migration CSV, imports it:

    python scripts/init_database.py [path/to/applications.csv]
"""

import os
import sys

sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from app import app  # noqa: E402
from intake_app.lifecycle.intake import IntakeService  # noqa: E402
from intake_app.models import ApplicationRecord, db  # noqa: E402


def init_database(csv_path=None):
    """Create tables and optionally seed applications from a migration CSV"""
    with app.app_context():
        db.create_all()
        print(f"Tables ready ({db.session.query(ApplicationRecord).count()} application(s) stored).")

        if not csv_path:
            return

        service = IntakeService.from_config(app.config)
        with open(csv_path, "r", encoding="utf-8-sig", newline="") as handle:
            payloads = service.read_import_csv(handle)
        summary = service.bulk_import(payloads)
        print(f"Imported {summary.imported} application(s), skipped {summary.skipped} existing.")


if __name__ == "__main__":
    init_database(sys.argv[1] if len(sys.argv) > 1 else None)
