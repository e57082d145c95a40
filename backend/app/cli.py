"""
Importação dos catálogos pela linha de comando.

Uso:
    python -m app.cli import-cid10 --dir ssf/Fixtures/CID10 --version SSF
    python -m app.cli import-cbo --dir ssf/Fixtures/CBO
"""

import argparse
import json
import logging
import sys

from app.database import Base, SessionLocal, engine
from app.datalayer import Cid10Importer, CboImporter
from app.exceptions import FixtureError
from app.logging_config import setup_logging

logger = logging.getLogger(__name__)


def cmd_import_cid10(args: argparse.Namespace) -> None:
    db = SessionLocal()
    try:
        summary = Cid10Importer(db, batch_size=args.batch_size).run(args.dir, version=args.version)
    finally:
        db.close()
    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))


def cmd_import_cbo(args: argparse.Namespace) -> None:
    db = SessionLocal()
    try:
        summary = CboImporter(db, batch_size=args.batch_size).run(args.dir)
    finally:
        db.close()
    print(json.dumps(summary.to_dict(), ensure_ascii=False, indent=2))


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="catalogo", description="Importadores CID-10 / CBO")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING...")
    sub = parser.add_subparsers(dest="command", required=True)

    p_cid = sub.add_parser("import-cid10", help="Importa CID-10 dos fixtures JSON do SSF")
    p_cid.add_argument("--dir", default="ssf/Fixtures/CID10")
    p_cid.add_argument("--version", default="SSF")
    p_cid.add_argument("--batch-size", type=int, default=None)
    p_cid.set_defaults(func=cmd_import_cid10)

    p_cbo = sub.add_parser("import-cbo", help="Importa hierarquia CBO e ocupações dos XLSX do SSF")
    p_cbo.add_argument("--dir", default="ssf/Fixtures/CBO")
    p_cbo.add_argument("--batch-size", type=int, default=None)
    p_cbo.set_defaults(func=cmd_import_cbo)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level.upper() if args.log_level else None)
    Base.metadata.create_all(bind=engine)
    try:
        args.func(args)
    except FixtureError as e:
        logger.error("%s", e)
        return 1
    except Exception:
        logger.exception("Importação interrompida")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
