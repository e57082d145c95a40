import logging
import re
import threading
import time
from typing import Any, Dict, List, Optional

from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.config import settings
from app.exceptions import HierarchyError, NotFoundError
from app.models.audit_log import AuditAction
from app.models.medical_code import (
    CodeSystem, MedicalCode, CodeSystemKind, SexRestriction, CrossAsterisk
)
from app.services.audit_service import record_audit

logger = logging.getLogger(__name__)

MAX_HIERARCHY_DEPTH = 5

LIKE_ESCAPE = "\\"

CID10_CHAPTER_NAMES = {
    "I": "Doenças infecciosas e parasitárias",
    "II": "Neoplasias",
    "III": "Doenças do sangue e órgãos hematopoéticos",
    "IV": "Doenças endócrinas, nutricionais e metabólicas",
    "V": "Transtornos mentais e comportamentais",
    "VI": "Doenças do sistema nervoso",
    "VII": "Doenças do olho e anexos",
    "VIII": "Doenças do ouvido e da apófise mastoide",
    "IX": "Doenças do aparelho circulatório",
    "X": "Doenças do aparelho respiratório",
    "XI": "Doenças do aparelho digestivo",
    "XII": "Doenças da pele e do tecido subcutâneo",
    "XIII": "Doenças do sistema osteomuscular",
    "XIV": "Doenças do aparelho geniturinário",
    "XV": "Gravidez, parto e puerpério",
    "XVI": "Afecções originadas no período perinatal",
    "XVII": "Malformações congênitas",
    "XVIII": "Sintomas, sinais e achados anormais",
    "XIX": "Lesões, envenenamentos e causas externas",
    "XX": "Causas externas de morbidade e mortalidade",
    "XXI": "Fatores que influenciam o estado de saúde",
    "XXII": "Códigos para propósitos especiais",
}


class SearchCache:
    """
    Cache em memória com expiração, usado pela busca de códigos. Compartilhado
    entre as threads do servidor; limitado a max_entries chaves.
    """

    def __init__(self, ttl_seconds: int, max_entries: int = 1000):
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self._entries: Dict[str, tuple] = {}
        self._lock = threading.Lock()

    def get(self, key: str):
        with self._lock:
            entry = self._entries.get(key)
            if entry is None:
                return None
            expires_at, value = entry
            if time.monotonic() > expires_at:
                self._entries.pop(key, None)
                return None
            return value

    def set(self, key: str, value) -> None:
        with self._lock:
            now = time.monotonic()
            if len(self._entries) >= self.max_entries:
                self._prune(now)
            self._entries[key] = (now + self.ttl_seconds, value)

    def clear(self) -> None:
        with self._lock:
            self._entries.clear()

    def __len__(self) -> int:
        return len(self._entries)

    def _prune(self, now: float) -> None:
        for key in [k for k, (expires_at, _) in self._entries.items() if now > expires_at]:
            del self._entries[key]
        # ainda cheio: descarta as chaves mais antigas
        overflow = len(self._entries) - self.max_entries + 1
        for key in list(self._entries)[:max(overflow, 0)]:
            del self._entries[key]


search_cache = SearchCache(settings.search_cache_ttl_seconds)


def system_key(kind: CodeSystemKind, version: Optional[str] = None) -> str:
    return f"{kind.value}:{version}" if version else kind.value


def like_pattern(text: str) -> str:
    """Padrão `%texto%` para ilike com `\\`, `%` e `_` escapados."""
    escaped = text.replace("\\", "\\\\").replace("%", "\\%").replace("_", "\\_")
    return f"%{escaped}%"


def build_searchable_text(code: str, display: str, short_description: Optional[str]) -> str:
    return f"{code} {display} {short_description or ''}".strip()


def serialize_code(code: MedicalCode) -> Dict[str, Any]:
    return {
        "id": code.id,
        "system_id": code.system_id,
        "code": code.code,
        "display": code.display,
        "short_description": code.short_description,
        "description": code.description,
        "is_category": code.is_category,
        "chapter": code.chapter,
        "parent_id": code.parent_id,
        "sex_restriction": code.sex_restriction.value if code.sex_restriction else None,
        "cross_asterisk": code.cross_asterisk.value if code.cross_asterisk else None,
        "synonyms": code.synonyms or [],
        "active": code.active,
    }


class CodingService:

    def __init__(self, db: Session, cache: Optional[SearchCache] = None):
        self.db = db
        self.cache = cache if cache is not None else search_cache

    def get_system(self, kind: CodeSystemKind, version: Optional[str] = None) -> Optional[CodeSystem]:
        query = self.db.query(CodeSystem).filter(CodeSystem.kind == kind)
        if version is None:
            query = query.filter(CodeSystem.version.is_(None))
        else:
            query = query.filter(CodeSystem.version == version)
        return query.first()

    def upsert_code_system(
        self,
        kind: CodeSystemKind,
        name: str,
        version: Optional[str] = None,
        description: Optional[str] = None,
        active: bool = True
    ) -> CodeSystem:
        """Cria ou atualiza o CodeSystem identificado por (kind, version)."""
        system = self.get_system(kind, version)
        if system:
            system.name = name
            system.active = active
            if description is not None:
                system.description = description
        else:
            system = CodeSystem(
                kind=kind,
                version=version,
                name=name,
                description=description,
                active=active
            )
            self.db.add(system)
        self.db.flush()
        return system

    def bulk_import_codes(
        self,
        kind: CodeSystemKind,
        codes: List[Dict[str, Any]],
        version: Optional[str] = None,
        rebuild_search_text: bool = False,
        actor: Optional[Dict[str, str]] = None
    ) -> Dict[str, int]:
        """
        Importa uma lista de códigos num sistema existente. O pai é resolvido
        pelos códigos já gravados e pelos anteriores da própria lista, então
        pais devem vir antes dos filhos. Sem parent_code, um código existente
        mantém pai e is_category; um código novo entra como categoria.
        O lote inteiro é validado antes de qualquer escrita.
        """
        system = self.get_system(kind, version)
        if not system:
            raise NotFoundError(f"CodeSystem não encontrado: {system_key(kind, version)}")

        existing = {
            c.code: c for c in self.db.query(MedicalCode).filter(MedicalCode.system_id == system.id).all()
        }
        self._check_hierarchy(existing, codes)

        for item in codes:
            record = existing.get(item["code"])
            if record is None:
                record = MedicalCode(system_id=system.id, code=item["code"], is_category=True)
                self.db.add(record)
                existing[item["code"]] = record
            record.display = item["display"]
            if item.get("description") is not None:
                record.description = item["description"]
            if item.get("parent_code"):
                record.parent = existing[item["parent_code"]]
                record.is_category = False
            if item.get("synonyms") is not None:
                record.synonyms = list(item["synonyms"])
            record.active = True
            self.db.flush()

        self.db.commit()
        self.cache.clear()

        if rebuild_search_text:
            self.rebuild_searchable_text(system.id)

        record_audit(
            self.db, AuditAction.DATA_IMPORT, "CodeSystem", system_key(kind, version), actor,
            description=f"Importação de {len(codes)} códigos"
        )
        self.db.commit()
        return {"imported": len(codes)}

    @staticmethod
    def _check_hierarchy(existing: Dict[str, MedicalCode], codes: List[Dict[str, Any]]) -> None:
        """Pai de subcategoria precisa ser categoria; código com filhos não vira subcategoria."""
        by_id = {c.id: c.code for c in existing.values()}
        is_category = {code: c.is_category for code, c in existing.items()}
        has_children = {by_id[c.parent_id] for c in existing.values() if c.parent_id in by_id}

        for item in codes:
            code = item["code"]
            parent_code = item.get("parent_code")
            if not parent_code:
                is_category.setdefault(code, True)
                continue
            if parent_code == code:
                raise HierarchyError(f"Código {code} não pode ser pai de si mesmo")
            if parent_code not in is_category:
                raise HierarchyError(f"Código pai {parent_code} não encontrado para {code}")
            if not is_category[parent_code]:
                raise HierarchyError(f"Código pai {parent_code} de {code} não é uma categoria")
            if code in has_children:
                raise HierarchyError(f"Código {code} tem subcategorias e não pode virar subcategoria")
            is_category[code] = False
            has_children.add(parent_code)

    def rebuild_searchable_text(self, system_id: int) -> Dict[str, int]:
        codes = self.db.query(MedicalCode).filter(MedicalCode.system_id == system_id).all()
        for c in codes:
            parts = [c.code, c.display, c.description, c.short_description] + list(c.synonyms or [])
            c.searchable_text = " ".join(p for p in parts if p).lower()
        self.db.commit()
        self.cache.clear()
        return {"rebuilt": len(codes)}

    def _system_filter(self, query, kind: Optional[CodeSystemKind]):
        if kind:
            query = query.join(CodeSystem, MedicalCode.system_id == CodeSystem.id).filter(CodeSystem.kind == kind)
        return query

    def search_codes(
        self,
        query: str,
        kind: Optional[CodeSystemKind] = None,
        limit: int = 25,
        chapter: Optional[str] = None,
        sex_restriction: Optional[SexRestriction] = None,
        categories_only: bool = False
    ) -> List[Dict[str, Any]]:
        q = query.strip().lower()
        cache_key = ":".join([
            "codeSearch",
            kind.value if kind else "ANY",
            chapter or "",
            sex_restriction.value if sex_restriction else "",
            "1" if categories_only else "0",
            str(limit),
            q
        ])
        cached = self.cache.get(cache_key)
        if cached is not None:
            return cached

        pattern = like_pattern(q)
        db_query = self._system_filter(self.db.query(MedicalCode), kind).filter(
            MedicalCode.active == True,
            or_(
                MedicalCode.code.ilike(pattern, escape=LIKE_ESCAPE),
                MedicalCode.display.ilike(pattern, escape=LIKE_ESCAPE),
                MedicalCode.short_description.ilike(pattern, escape=LIKE_ESCAPE),
                MedicalCode.searchable_text.ilike(pattern, escape=LIKE_ESCAPE)
            )
        )
        if chapter:
            db_query = db_query.filter(MedicalCode.chapter == chapter)
        if sex_restriction:
            db_query = db_query.filter(or_(
                MedicalCode.sex_restriction == sex_restriction,
                MedicalCode.sex_restriction.is_(None)
            ))
        if categories_only:
            db_query = db_query.filter(MedicalCode.is_category == True)

        results = [serialize_code(c) for c in db_query.order_by(MedicalCode.code).limit(limit).all()]
        self.cache.set(cache_key, results)
        return results

    def search_codes_for_gender(
        self, query: str, gender: SexRestriction, kind: Optional[CodeSystemKind] = None, limit: int = 25
    ) -> List[Dict[str, Any]]:
        """Busca apenas códigos válidos para o sexo do paciente."""
        return self.search_codes(query, kind, limit, sex_restriction=gender)

    def get_code_detail(self, id_or_code: str) -> Optional[Dict[str, Any]]:
        code = None
        if str(id_or_code).isdigit():
            code = self.db.query(MedicalCode).filter(MedicalCode.id == int(id_or_code)).first()
        if code is None:
            code = self.db.query(MedicalCode).filter(MedicalCode.code == str(id_or_code)).first()
        if code is None:
            return None

        path = []
        current = code.parent
        depth = 0
        while current is not None and depth < MAX_HIERARCHY_DEPTH:
            path.insert(0, {"id": current.id, "code": current.code, "display": current.display})
            current = current.parent
            depth += 1

        detail = serialize_code(code)
        detail["parent"] = serialize_code(code.parent) if code.parent else None
        detail["hierarchy_path"] = path
        return detail

    def list_chapters(self, kind: Optional[CodeSystemKind] = None) -> List[Dict[str, Any]]:
        query = self._system_filter(
            self.db.query(MedicalCode.chapter, func.count(MedicalCode.id)).select_from(MedicalCode),
            kind
        ).filter(MedicalCode.chapter.isnot(None))
        rows = query.group_by(MedicalCode.chapter).order_by(MedicalCode.chapter).all()
        return [
            {
                "code": chapter,
                "name": CID10_CHAPTER_NAMES.get(chapter, f"Capítulo {chapter}"),
                "count": int(count)
            }
            for chapter, count in rows
        ]

    def get_codes_by_chapter(
        self, chapter: str, kind: Optional[CodeSystemKind] = None, limit: int = 100
    ) -> List[Dict[str, Any]]:
        query = self._system_filter(self.db.query(MedicalCode), kind).filter(
            MedicalCode.chapter == chapter,
            MedicalCode.active == True
        )
        return [serialize_code(c) for c in query.order_by(MedicalCode.code).limit(limit).all()]

    def get_code_stats(self, kind: Optional[CodeSystemKind] = None) -> Dict[str, int]:
        def count(*criteria) -> int:
            query = self._system_filter(self.db.query(func.count(MedicalCode.id)).select_from(MedicalCode), kind)
            if criteria:
                query = query.filter(*criteria)
            return int(query.scalar() or 0)

        return {
            "total": count(),
            "categories": count(MedicalCode.is_category == True),
            "with_sex_restriction": count(MedicalCode.sex_restriction.isnot(None)),
            "etiology_codes": count(MedicalCode.cross_asterisk == CrossAsterisk.ETIOLOGY),
            "manifestation_codes": count(MedicalCode.cross_asterisk == CrossAsterisk.MANIFESTATION),
        }

    def suggest_codes(
        self, free_text: str, kind: Optional[CodeSystemKind] = None, limit: int = 5
    ) -> List[Dict[str, Any]]:
        """
        Sugere códigos a partir de texto livre: extrai termos com mais de
        3 letras e ordena os candidatos pelo número de termos encontrados.
        """
        limit = min(limit or 5, 15)
        text = free_text.strip().lower()
        if not text:
            return []

        tokens = []
        for token in re.sub(r"[^a-z0-9à-ú\s]", " ", text).split():
            if len(token) > 3 and token not in tokens:
                tokens.append(token)
        tokens = tokens[:12]
        if not tokens:
            return []

        conditions = []
        for token in tokens:
            pattern = like_pattern(token)
            conditions.extend([
                MedicalCode.code.ilike(pattern, escape=LIKE_ESCAPE),
                MedicalCode.display.ilike(pattern, escape=LIKE_ESCAPE),
                MedicalCode.searchable_text.ilike(pattern, escape=LIKE_ESCAPE)
            ])

        candidates = self._system_filter(self.db.query(MedicalCode), kind).filter(
            MedicalCode.active == True,
            or_(*conditions)
        ).order_by(MedicalCode.code).limit(limit * 3).all()

        scored = []
        for c in candidates:
            haystack = f"{c.code} {c.display} {c.searchable_text or ''}".lower()
            score = sum(1 for t in tokens if t in haystack)
            scored.append((score, c))
        scored.sort(key=lambda x: x[0], reverse=True)

        results = []
        for score, c in scored[:limit]:
            item = serialize_code(c)
            item["match_score"] = score
            results.append(item)
        return results

    def deactivate_code(self, code_id: int, actor: Optional[Dict[str, str]] = None) -> Dict[str, Any]:
        code = self.db.query(MedicalCode).filter(MedicalCode.id == code_id).first()
        if not code:
            raise NotFoundError("Código não encontrado")
        code.active = False
        record_audit(self.db, AuditAction.CODE_DEACTIVATED, "MedicalCode", code.code, actor)
        self.db.commit()
        self.cache.clear()
        return serialize_code(code)
