"""Load a master design file into the design mapping store.

Usage:
  python scripts/import_designs.py --file designs.xlsx --user admin
Or provide via env: DESIGN_FILE, IMPORT_USER
"""
import os
import argparse
from pathlib import Path

from karigar_core.app.db import SessionLocal, create_db_and_tables
from karigar_core.app.excel import parse_mapping_file
from karigar_core.app.services import MappingService


def main():
    parser = argparse.ArgumentParser()
    parser.add_argument('--file')
    parser.add_argument('--user')
    args = parser.parse_args()

    path = args.file or os.getenv('DESIGN_FILE')
    user = args.user or os.getenv('IMPORT_USER')
    if not path:
        path = input('Design file (.xlsx/.csv): ').strip()

    records, errors = parse_mapping_file(Path(path).read_bytes(), path)
    for err in errors:
        print(f"Row {err['row']}: {err['message']}")

    create_db_and_tables()
    db = SessionLocal()
    try:
        results = MappingService.upload_mappings(db, records, user=user)
    finally:
        db.close()
    saved = len([r for r in results if r['success']])
    print(f'Imported {saved} of {len(records)} design mappings ({len(errors)} rows skipped)')


if __name__ == '__main__':
    main()
