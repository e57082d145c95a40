"""
CboImporter - Importa a hierarquia CBO e as ocupações dos fixtures XLSX do SSF.

Hierarquia: Grande Grupo -> Subgrupo Principal -> Subgrupo -> Família.
As planilhas de nomes não trazem o pai; as ligações vêm do Perfil.xlsx
(ocupação x atividade), usando a primeira ocorrência de cada filho.

Os ids de cada planilha não são globais, então os grupos recebem códigos
namespaced (GG:<code>, MSG:<id>, SG:<id>, FAM:<id>).
"""

import logging
import os
from typing import Dict, List

from sqlalchemy.orm import Session

from app.config import settings
from app.models.audit_log import AuditAction
from app.models.occupation import CBOGroup, CBOLevel, Occupation
from app.services.audit_service import record_audit
from app.services.occupation_capability_service import OccupationCapabilityService
from .fixtures import Row, cell_to_int, cell_to_string, read_xlsx, require_files
from .summary import ImportSummary

logger = logging.getLogger(__name__)

CBO_FILES = {
    "grande_grupo": "Grande Grupo.xlsx",
    "main_sub_group": "SubGrupo Principal.xlsx",
    "sub_group": "SubGrupo.xlsx",
    "familia": "Familia.xlsx",
    "ocupacao": "Ocupacao.xlsx",
    "sinonimo": "Sinonimo.xlsx",
    "perfil": "Perfil.xlsx",
}


def gg_code(code: int) -> str:
    return f"GG:{code}"


def msg_code(id_: int) -> str:
    return f"MSG:{id_}"


def sg_code(id_: int) -> str:
    return f"SG:{id_}"


def fam_code(id_: int) -> str:
    return f"FAM:{id_}"


def names_by_id(rows: List[Row]) -> Dict[int, str]:
    names = {}
    for r in rows:
        id_ = cell_to_int(r.get("id"))
        name = cell_to_string(r.get("name"))
        if not id_ or not name:
            continue
        names[id_] = name
    return names


def synonyms_by_occupation(rows: List[Row]) -> Dict[int, List[str]]:
    """Sinônimos por ocupação: sem vazios, sem duplicatas, ordenados."""
    collected: Dict[int, set] = {}
    for r in rows:
        occ = cell_to_int(r.get("occupation"))
        name = cell_to_string(r.get("name"))
        if not occ or not name:
            continue
        collected.setdefault(occ, set()).add(name)
    return {occ: sorted(names) for occ, names in collected.items()}


class ProfileLinks:
    """Ligações pai/filho observadas no Perfil.xlsx (primeira ocorrência vence)."""

    def __init__(self, rows: List[Row]):
        self.msg_to_gg: Dict[int, int] = {}
        self.sg_to_msg: Dict[int, int] = {}
        self.fam_to_sg: Dict[int, int] = {}
        self.occ_to_fam: Dict[int, int] = {}

        for r in rows:
            gg = cell_to_int(r.get("grand_group"))
            msg = cell_to_int(r.get("main_sub_group"))
            sg = cell_to_int(r.get("sub_group"))
            fam = cell_to_int(r.get("family"))
            occ = cell_to_int(r.get("occupation"))

            if gg and msg:
                self.msg_to_gg.setdefault(msg, gg)
            if msg and sg:
                self.sg_to_msg.setdefault(sg, msg)
            if sg and fam:
                self.fam_to_sg.setdefault(fam, sg)
            if occ and fam:
                self.occ_to_fam.setdefault(occ, fam)


class CboImporter:

    def __init__(self, db: Session, batch_size: int = None, progress_every: int = None):
        self.db = db
        self.batch_size = batch_size or settings.import_batch_size
        self.progress_every = progress_every or settings.import_progress_every
        self.service = OccupationCapabilityService(db)

    def run(self, directory: str) -> ImportSummary:
        paths = {key: os.path.join(directory, name) for key, name in CBO_FILES.items()}
        require_files(paths)

        summary = ImportSummary(source="CBO")

        gg_by_id = {}
        for r in read_xlsx(paths["grande_grupo"]):
            id_ = cell_to_int(r.get("id"))
            code = cell_to_int(r.get("code"))
            name = cell_to_string(r.get("name"))
            if not id_ or code is None or not name:
                summary.count_skip("grande_grupo_invalid")
                continue
            gg_by_id[id_] = {"code": code, "name": name}

        msg_names = names_by_id(read_xlsx(paths["main_sub_group"]))
        sg_names = names_by_id(read_xlsx(paths["sub_group"]))
        fam_names = names_by_id(read_xlsx(paths["familia"]))
        occ_rows = read_xlsx(paths["ocupacao"])
        synonyms = synonyms_by_occupation(read_xlsx(paths["sinonimo"]))
        links = ProfileLinks(read_xlsx(paths["perfil"]))

        logger.info("CBO (SSF) - mapeamentos (via Perfil):")
        logger.info("  grande grupos: %d", len(gg_by_id))
        logger.info("  main_sub_groups: %d com parent: %d", len(msg_names), len(links.msg_to_gg))
        logger.info("  sub_groups: %d com parent: %d", len(sg_names), len(links.sg_to_msg))
        logger.info("  familias: %d com parent: %d", len(fam_names), len(links.fam_to_sg))
        logger.info("  ocupações (no Perfil): %d", len(links.occ_to_fam))

        # Grupos em ordem hierárquica: o pai precisa existir antes do filho
        for gg in gg_by_id.values():
            self.service.upsert_group(gg_code(gg["code"]), gg["name"], CBOLevel.GRANDE_GRUPO, audit=False)
            summary.count_upsert("grande_grupo")
        self.db.commit()

        for id_, name in msg_names.items():
            gg = gg_by_id.get(links.msg_to_gg.get(id_))
            parent = gg_code(gg["code"]) if gg else None
            self.service.upsert_group(msg_code(id_), name, CBOLevel.SUBGRUPO_PRINCIPAL, parent, audit=False)
            summary.count_upsert("main_sub_group")
        self.db.commit()

        for id_, name in sg_names.items():
            parent_id = links.sg_to_msg.get(id_)
            parent = msg_code(parent_id) if parent_id else None
            self.service.upsert_group(sg_code(id_), name, CBOLevel.SUBGRUPO, parent, audit=False)
            summary.count_upsert("sub_group")
        self.db.commit()

        for id_, name in fam_names.items():
            parent_id = links.fam_to_sg.get(id_)
            parent = sg_code(parent_id) if parent_id else None
            self.service.upsert_group(fam_code(id_), name, CBOLevel.FAMILIA, parent, audit=False)
            summary.count_upsert("familia")
        self.db.commit()

        linked = 0
        processed = 0
        for r in occ_rows:
            id_ = cell_to_int(r.get("id"))
            name = cell_to_string(r.get("name"))
            if not id_ or not name:
                summary.count_skip("ocupacao_invalid")
                continue

            fam_id = links.occ_to_fam.get(id_)
            group = fam_code(fam_id) if fam_id else None
            occ_synonyms = synonyms.get(id_)
            occupation = self.service.upsert_occupation(
                str(id_), name, group_code=group, synonyms=occ_synonyms or None, audit=False
            )
            processed += 1
            if occupation.group_id:
                linked += 1
            if processed % self.batch_size == 0:
                self.db.commit()
            if processed % self.progress_every == 0:
                logger.info("  occupations upserted: %d", processed)
        self.db.commit()
        summary.count_upsert("occupations", processed)
        summary.count_upsert("occupations_linked", linked)

        summary.db_counts = {
            "cbo_groups": self.db.query(CBOGroup).count(),
            "occupations": self.db.query(Occupation).count(),
            "occupations_with_group": self.db.query(Occupation).filter(Occupation.group_id.isnot(None)).count(),
        }

        record_audit(
            self.db, AuditAction.DATA_IMPORT, "CBOGroup",
            description="Importação CBO (hierarquia)", new_values=summary.to_dict()
        )
        self.db.commit()

        logger.info("Importação CBO (hierarquia) concluída: %s", summary.upserted)
        logger.info("  DB counts: %s", summary.db_counts)
        return summary
