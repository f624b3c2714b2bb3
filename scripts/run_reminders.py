#!/usr/bin/env python3
"""Daily reminder sweep, meant for cron (10:00 America/Mexico_City)."""
from __future__ import annotations

import argparse
import sys
from datetime import date
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
sys.path.append(str(ROOT))

from pedidobot.core.database import SessionLocal  # noqa: E402
from pedidobot.core.logging_setup import configure_logging  # noqa: E402
from pedidobot.services.reminders import run_reminder_sweep  # noqa: E402
from pedidobot.whatsapp.service import WhatsAppService  # noqa: E402
import pedidobot.models  # noqa: E402,F401


def parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Envía los recordatorios de pedido del día.")
    parser.add_argument("--date", type=date.fromisoformat, help="Fecha a procesar (YYYY-MM-DD), por defecto hoy")
    return parser.parse_args()


def main() -> int:
    args = parse_args()
    configure_logging()

    db = SessionLocal()
    try:
        result = run_reminder_sweep(db, WhatsAppService(), today=args.date)
    finally:
        db.close()

    print(f"Enviados: {result['sent']}  Errores: {result['errors']}  Omitidos: {result['skipped']}")
    return 1 if result["errors"] else 0


if __name__ == "__main__":
    raise SystemExit(main())
