#!/usr/bin/env python3
from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from pedidobot.core.database import Base, SessionLocal, engine  # noqa: E402
from pedidobot.services.catalog import seed_catalog  # noqa: E402
import pedidobot.models  # noqa: E402,F401

DEFAULT_CATALOG = [
    {"name": "JUMEX 125", "brand": "JUMEX", "price_cents": 23800, "package_size": 10,
     "flavors": ["MANZANA", "MANGO", "DURAZNO"]},
    {"name": "JUMEX BOTELLITA", "brand": "JUMEX", "price_cents": 24700, "package_size": 6,
     "flavors": ["MANZANA", "MANGO", "DURAZNO"]},
    {"name": "JUMEX LATA 335", "brand": "JUMEX", "price_cents": 16200, "package_size": 6,
     "flavors": ["MANZANA", "MANGO", "DURAZNO", "PIÑA"]},
    {"name": "JUMEX LB 460", "brand": "JUMEX", "price_cents": 21000, "package_size": 6,
     "flavors": ["MANZANA", "MANGO", "DURAZNO", "GUAYABA"]},
    {"name": "BIDA 237", "brand": "BIDA", "price_cents": 18000, "package_size": 12,
     "flavors": ["MANZANA", "UVA", "FRESA", "GUAYABA", "MANGO"]},
    {"name": "BIDA 500", "brand": "BIDA", "price_cents": 16800, "package_size": 6,
     "flavors": ["MANZANA", "UVA", "FRESA", "MANGO"]},
]


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Carga el catálogo de productos.")
    parser.add_argument("--file", help="JSON con una lista de productos; por defecto el catálogo base")
    parser.add_argument("--create-tables", action="store_true", help="Crea las tablas antes de cargar (dev)")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    entries = DEFAULT_CATALOG
    if args.file:
        entries = json.loads(Path(args.file).read_text(encoding="utf-8"))

    if args.create_tables:
        Base.metadata.create_all(bind=engine)

    db = SessionLocal()
    try:
        created = seed_catalog(db, entries)
    finally:
        db.close()
    print(f"Productos nuevos: {created}")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
