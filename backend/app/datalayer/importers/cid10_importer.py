"""
Cid10Importer - Importa a CID-10 a partir dos fixtures Django do SSF.

Arquivos (no diretório informado):
- Categoria.json           categorias (A00, A01, ...)
- CID10_SubCategoria.json  subcategorias (dígito + categoria)
- CID10 - Capitulos.json   opcional, mapeia capítulo da categoria

Categorias são gravadas antes das subcategorias (parent_id autorreferente).
Subcategorias sem categoria ou sem dígito são ignoradas e contadas.
NUNCA cria dados fictícios: só o que está nos arquivos.
"""

import logging
import os
from typing import Any, Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config import settings
from app.models.audit_log import AuditAction
from app.models.medical_code import MedicalCode, CodeSystemKind, SexRestriction, CrossAsterisk
from app.services.audit_service import record_audit
from app.services.coding_service import CodingService, build_searchable_text, system_key
from .fixtures import is_json_int, read_json_array, require_files
from .summary import ImportSummary

logger = logging.getLogger(__name__)

CID10_FILES = {
    "categories": "Categoria.json",
    "subcategories": "CID10_SubCategoria.json",
    "chapters": "CID10 - Capitulos.json",
}

# Dump do SSF: genre 1=Masculino, 2=Feminino
GENRE_TO_SEX = {1: SexRestriction.MALE, 2: SexRestriction.FEMALE}

# ICD10Manifestation do SSF: 1=Doença de base, 2=Manifestação.
# ETIOLOGY não é inferida sem fonte explícita.
MANIFESTATION_TO_CROSS = {2: CrossAsterisk.MANIFESTATION}


def map_sex_restriction(genre: Any) -> Optional[SexRestriction]:
    return GENRE_TO_SEX.get(genre) if is_json_int(genre) else None


def map_cross_asterisk(manifestation: Any) -> Optional[CrossAsterisk]:
    return MANIFESTATION_TO_CROSS.get(manifestation) if is_json_int(manifestation) else None


def compose_subcategory_code(category_code: str, digit: Any) -> Optional[str]:
    digit_str = "" if digit is None else str(digit).strip()
    if not digit_str:
        return None
    return f"{category_code}.{digit_str}"


def chunk(items: List[Any], size: int) -> List[List[Any]]:
    return [items[i:i + size] for i in range(0, len(items), size)]


class Cid10Importer:

    def __init__(self, db: Session, batch_size: int = None, progress_every: int = None):
        self.db = db
        self.batch_size = batch_size or settings.import_batch_size
        self.progress_every = progress_every or settings.import_progress_every
        self.coding = CodingService(db)

    def run(self, directory: str, version: str = "SSF") -> ImportSummary:
        paths = {key: os.path.join(directory, name) for key, name in CID10_FILES.items()}
        require_files({k: paths[k] for k in ("categories", "subcategories")})

        summary = ImportSummary(source="CID10")

        chapters_by_pk = {}
        if os.path.exists(paths["chapters"]):
            chapters_by_pk = self._load_chapters(paths["chapters"])

        categories = []
        for row in read_json_array(paths["categories"]):
            fields = row.get("fields") if isinstance(row, dict) else None
            if isinstance(fields, dict) and is_json_int(row.get("pk")) and isinstance(fields.get("code"), str):
                categories.append((row["pk"], fields))
            else:
                summary.count_skip("categories_invalid")

        subcategories = []
        for row in read_json_array(paths["subcategories"]):
            fields = row.get("fields") if isinstance(row, dict) else None
            if isinstance(fields, dict) and is_json_int(row.get("pk")) and is_json_int(fields.get("category")):
                subcategories.append((row["pk"], fields))
            else:
                summary.count_skip("subcategories_invalid")

        logger.info("CID10 fixtures: %d categorias, %d subcategorias", len(categories), len(subcategories))

        system = self.coding.upsert_code_system(
            CodeSystemKind.CID10, "CID-10", version=version,
            description="Importado do SSF (fixtures)"
        )
        self.db.commit()

        existing = {
            c.code: c for c in self.db.query(MedicalCode).filter(MedicalCode.system_id == system.id).all()
        }

        category_by_pk = {}
        for pk, fields in categories:
            code = fields["code"].strip()
            short = str(fields["short_name"]).strip() if fields.get("short_name") else None
            display = str(fields.get("long_name") or fields.get("short_name") or code).strip()
            chapter_pk = fields.get("chapter")
            chapter = chapters_by_pk.get(chapter_pk) if is_json_int(chapter_pk) else None
            category_by_pk[pk] = {"code": code, "display": display, "short": short, "chapter": chapter}

        logger.info("Upsert categorias...")
        category_rows = {}
        for cat in category_by_pk.values():
            category_rows[cat["code"]] = self._upsert(system.id, existing, cat["code"], {
                "display": cat["display"],
                "short_description": cat["short"],
                "description": cat["display"],
                "is_category": True,
                "chapter": cat["chapter"],
                "parent_id": None,
                "sex_restriction": None,
                "cross_asterisk": None,
            })
        self.db.commit()
        summary.count_upsert("categories", len(category_rows))

        sub_data = []
        for pk, fields in subcategories:
            cat = category_by_pk.get(fields["category"])
            if cat is None:
                logger.debug("Subcategoria %s ignorada: categoria %s desconhecida", pk, fields["category"])
                summary.count_skip("subcategories_without_category")
                continue
            code = compose_subcategory_code(cat["code"], fields.get("code"))
            if code is None:
                logger.debug("Subcategoria %s ignorada: sem dígito", pk)
                summary.count_skip("subcategories_without_digit")
                continue
            short = str(fields["short_name"]).strip() if fields.get("short_name") else None
            display = str(fields.get("long_name") or fields.get("short_name") or code).strip()
            sub_data.append((code, {
                "display": display,
                "short_description": short,
                "description": display,
                "is_category": False,
                "chapter": cat["chapter"],
                "parent_id": category_rows[cat["code"]].id,
                "sex_restriction": map_sex_restriction(fields.get("genre")),
                "cross_asterisk": map_cross_asterisk(fields.get("manifestation")),
            }))

        logger.info("Upsert subcategorias: %d", len(sub_data))
        processed = 0
        for batch in chunk(sub_data, self.batch_size):
            for code, values in batch:
                self._upsert(system.id, existing, code, values)
            self.db.commit()
            processed += len(batch)
            if processed % self.progress_every == 0 or processed == len(sub_data):
                logger.info("  processados: %d/%d", processed, len(sub_data))
        summary.count_upsert("subcategories", processed)

        self.coding.cache.clear()

        counts = self.db.query(MedicalCode.is_category, func.count(MedicalCode.id)).filter(
            MedicalCode.system_id == system.id
        ).group_by(MedicalCode.is_category).all()
        summary.db_counts = {
            ("categories" if is_category else "subcategories"): int(n) for is_category, n in counts
        }
        summary.db_counts["system_id"] = system.id

        record_audit(
            self.db, AuditAction.DATA_IMPORT, "CodeSystem", system_key(CodeSystemKind.CID10, version),
            description=f"Importação CID-10 ({version})", new_values=summary.to_dict()
        )
        self.db.commit()

        logger.info("Importação CID-10 concluída (system_id=%s): %s", system.id, summary.db_counts)
        if summary.total_skipped:
            logger.info("Registros ignorados: %s", summary.skipped)
        return summary

    def _load_chapters(self, path: str) -> Dict[int, str]:
        chapters = {}
        for row in read_json_array(path):
            if not isinstance(row, dict):
                continue
            fields = row.get("fields") or {}
            if is_json_int(row.get("pk")) and row["pk"] and fields.get("chapter"):
                chapters[row["pk"]] = str(fields["chapter"]).strip()
        return chapters

    def _upsert(self, system_id: int, existing: Dict[str, MedicalCode], code: str, values: Dict[str, Any]) -> MedicalCode:
        record = existing.get(code)
        if record is None:
            record = MedicalCode(system_id=system_id, code=code)
            self.db.add(record)
            existing[code] = record

        for key, value in values.items():
            setattr(record, key, value)
        short = values.get("short_description")
        record.synonyms = [short] if short else []
        record.searchable_text = build_searchable_text(code, values["display"], short)
        record.active = True
        return record
