#!/usr/bin/env python3
"""
Recalcula total y duración de las sesiones de coworking terminadas con la
tarifa vigente. Útil después de cambiar la tarifa o corregir datos a mano.

Uso: python repair_coworking_totals.py [--status finished]
"""
import argparse
import logging
import sys
import os

sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from app.core.config import settings
from app.core.coworking_rules import Tariff
from app.core.logging import configure_logging
from app.services.repository import build_repository
from app.services.coworking_service import repair_session_totals


logger = logging.getLogger("repair_coworking_totals")


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description=__doc__.splitlines()[1])
    parser.add_argument("--status", default="finished", help="Estado de las sesiones a reparar")
    args = parser.parse_args(argv)

    configure_logging(settings.log_level)
    repository = build_repository(settings)
    result = repair_session_totals(repository, Tariff.from_settings(settings), status=args.status)
    logger.info("Repair finished: %s updated, %s skipped", result.updated, result.skipped)
    return 0


if __name__ == "__main__":
    sys.exit(main())
