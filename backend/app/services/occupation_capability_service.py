"""
Serviço de ocupações (CBO) e avaliação de capacidade por estrato.

O ranking de funções usa a escala ordinal S1..S8 (modelo de time-span de
Elliott Jaques): quanto mais próximo o estrato avaliado da faixa exigida
pela função, maior o score.
"""

import logging
from typing import Any, Dict, List, Optional

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.exceptions import HierarchyError, NotFoundError
from app.models.audit_log import AuditAction
from app.models.occupation import (
    CBOGroup, CBOLevel, Occupation, JobRole, UserJobRole,
    CapabilityEvaluation, StratumLevel
)
from app.services.audit_service import record_audit
from app.services.coding_service import LIKE_ESCAPE, like_pattern

logger = logging.getLogger(__name__)

STRATUM_ORDER = [s for s in StratumLevel]

# (limite superior em meses, estrato)
TIME_SPAN_THRESHOLDS = [
    (3, StratumLevel.S1),
    (12, StratumLevel.S2),
    (24, StratumLevel.S3),
    (48, StratumLevel.S4),
    (84, StratumLevel.S5),
    (120, StratumLevel.S6),
    (180, StratumLevel.S7),
]

GAP_PENALTY = 0.1


def stratum_index(stratum) -> int:
    return STRATUM_ORDER.index(StratumLevel(stratum))


def infer_stratum(time_span_months: int) -> StratumLevel:
    for limit, stratum in TIME_SPAN_THRESHOLDS:
        if time_span_months <= limit:
            return stratum
    return StratumLevel.S8


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return min(high, max(low, value))


def fit_score(user_stratum, min_stratum, max_stratum=None, potential_stratum=None) -> float:
    """
    Score de aderência (0..1) entre o estrato do usuário e a faixa da função.
    Abaixo do mínimo perde 0.1 por nível a partir de 0.4; acima do máximo
    perde 0.05 por nível a partir de 0.6; dentro da faixa parte de 0.75,
    ganha 0.02 por nível de largura e até 0.15 se o potencial passar do máximo.
    Os limites da faixa contam como dentro dela.
    """
    u = stratum_index(user_stratum)
    mn = stratum_index(min_stratum)
    mx = stratum_index(max_stratum) if max_stratum else mn

    if u < mn:
        return clamp(0.4 - (mn - u) * 0.1)
    if u > mx:
        return clamp(0.6 - (u - mx) * 0.05)

    base = 0.75 + (mx - mn) * 0.02
    if potential_stratum:
        p = stratum_index(potential_stratum)
        if p > mx:
            base += min(0.15, (p - mx) * 0.05)
    return clamp(base)


def compute_capability_scores(weights: Dict[str, float], gaps: Optional[Dict[str, Any]]) -> Dict[str, float]:
    scores = {}
    for name, weight in weights.items():
        gap = gaps.get(name) if gaps else None
        penalty = GAP_PENALTY if isinstance(gap, str) and gap else 0.0
        scores[name] = clamp((weight or 0) - penalty)
    return scores


def serialize_role(role: JobRole, score: Optional[float] = None) -> Dict[str, Any]:
    return {
        "id": role.id,
        "title": role.title,
        "occupation_id": role.occupation_id,
        "required_min_stratum": role.required_min_stratum.value,
        "required_max_stratum": role.required_max_stratum.value if role.required_max_stratum else None,
        "description": role.description,
        "capabilities": role.capabilities or {},
        "active": role.active,
        "fit_score": score,
    }


class OccupationCapabilityService:

    def __init__(self, db: Session):
        self.db = db

    # -- Hierarquia CBO ---------------------------------------------------

    def get_group(self, code: str) -> Optional[CBOGroup]:
        return self.db.query(CBOGroup).filter(CBOGroup.code == code).first()

    def upsert_group(
        self,
        code: str,
        name: str,
        level: int,
        parent_code: Optional[str] = None,
        actor: Optional[Dict[str, str]] = None,
        audit: bool = True
    ) -> CBOGroup:
        """
        Cria/atualiza um grupo CBO pelo código. O pai é resolvido pelo código;
        sem parent_code, ou com um código que não existe, a ligação atual é
        mantida. Um pai de nível errado é erro, assim como mudar o nível de
        um grupo que já tem filhos ou ocupações.
        """
        if level not in [lvl.value for lvl in CBOLevel]:
            raise HierarchyError(f"Nível CBO inválido: {level}")
        level = int(level)

        parent = None
        if parent_code and level > CBOLevel.GRANDE_GRUPO:
            parent = self.get_group(parent_code)
            if parent is not None and parent.level != level - 1:
                raise HierarchyError(
                    f"Grupo {code} (nível {level}) não pode ser filho de {parent_code} (nível {parent.level})"
                )

        group = self.get_group(code)
        if group is None:
            group = CBOGroup(code=code, name=name, level=level, parent_id=parent.id if parent else None)
            self.db.add(group)
        else:
            if group.level != level:
                has_children = self.db.query(CBOGroup.id).filter(CBOGroup.parent_id == group.id).first()
                has_occupations = self.db.query(Occupation.id).filter(Occupation.group_id == group.id).first()
                if has_children or has_occupations:
                    raise HierarchyError(
                        f"Grupo {code} tem filhos ou ocupações e não pode mudar do nível {group.level} para {level}"
                    )
                if parent is None and group.parent_id is not None and level > CBOLevel.GRANDE_GRUPO:
                    raise HierarchyError(
                        f"Grupo {code} mudou para o nível {level}; informe um pai de nível {level - 1}"
                    )
            group.name = name
            group.level = level
            if level == CBOLevel.GRANDE_GRUPO:
                group.parent_id = None
            elif parent is not None:
                group.parent_id = parent.id
        self.db.flush()

        if audit:
            record_audit(self.db, AuditAction.DATA_IMPORT, "CBOGroup", group.code, actor)
        return group

    def upsert_occupation(
        self,
        code: str,
        title: str,
        description: Optional[str] = None,
        group_code: Optional[str] = None,
        synonyms: Optional[List[str]] = None,
        actor: Optional[Dict[str, str]] = None,
        audit: bool = True
    ) -> Occupation:
        """Cria/atualiza uma ocupação. Sem group_code (ou com grupo desconhecido) a família atual é mantida."""
        group = self.get_group(group_code) if group_code else None
        if group is not None and group.level != CBOLevel.FAMILIA:
            raise HierarchyError(f"Ocupação {code} só pode ser ligada a uma Família (grupo {group_code} é nível {group.level})")

        occupation = self.db.query(Occupation).filter(Occupation.code == code).first()
        if occupation is None:
            occupation = Occupation(code=code)
            self.db.add(occupation)
        occupation.title = title
        if description is not None:
            occupation.description = description
        if group is not None:
            occupation.group_id = group.id
        if synonyms is not None:
            occupation.synonyms = list(synonyms)
        self.db.flush()

        if audit:
            record_audit(self.db, AuditAction.DATA_IMPORT, "Occupation", occupation.code, actor)
        return occupation

    def search_occupations(self, query: str, limit: int = 30) -> List[Occupation]:
        pattern = like_pattern(query.strip().lower())
        return self.db.query(Occupation).filter(or_(
            Occupation.code.ilike(pattern, escape=LIKE_ESCAPE),
            Occupation.title.ilike(pattern, escape=LIKE_ESCAPE),
            Occupation.description.ilike(pattern, escape=LIKE_ESCAPE)
        )).order_by(Occupation.title).limit(limit).all()

    def group_tree(self, depth: int = 3) -> List[Dict[str, Any]]:
        groups = self.db.query(CBOGroup).order_by(CBOGroup.level, CBOGroup.code).all()
        by_parent: Dict[Optional[int], List[CBOGroup]] = {}
        for g in groups:
            by_parent.setdefault(g.parent_id, []).append(g)

        def build(parent_id: Optional[int], remaining: int) -> List[Dict[str, Any]]:
            if remaining == 0:
                return []
            return [
                {
                    "id": g.id,
                    "code": g.code,
                    "name": g.name,
                    "level": g.level,
                    "children": build(g.id, remaining - 1)
                }
                for g in by_parent.get(parent_id, [])
            ]

        return build(None, depth)

    # -- Funções e avaliações ----------------------------------------------

    def create_job_role(
        self,
        title: str,
        required_min_stratum: StratumLevel,
        required_max_stratum: Optional[StratumLevel] = None,
        occupation_code: Optional[str] = None,
        description: Optional[str] = None,
        tasks: Optional[str] = None,
        capabilities: Optional[Dict[str, float]] = None,
        actor: Optional[Dict[str, str]] = None
    ) -> JobRole:
        if required_max_stratum and stratum_index(required_max_stratum) < stratum_index(required_min_stratum):
            raise HierarchyError("Estrato máximo não pode ser menor que o mínimo")

        occupation = None
        if occupation_code:
            occupation = self.db.query(Occupation).filter(Occupation.code == occupation_code).first()

        role = JobRole(
            title=title,
            occupation_id=occupation.id if occupation else None,
            required_min_stratum=required_min_stratum,
            required_max_stratum=required_max_stratum,
            description=description,
            tasks=tasks,
            capabilities=capabilities
        )
        self.db.add(role)
        self.db.flush()
        record_audit(self.db, AuditAction.JOB_ROLE_CREATED, "JobRole", role.id, actor)
        return role

    def assign_user_role(self, user_id: str, job_role_id: int, actor: Optional[Dict[str, str]] = None) -> UserJobRole:
        role = self.db.query(JobRole).filter(JobRole.id == job_role_id).first()
        if not role:
            raise NotFoundError("Função não encontrada")

        assignment = self.db.query(UserJobRole).filter(
            UserJobRole.user_id == user_id,
            UserJobRole.job_role_id == job_role_id
        ).first()
        if assignment:
            assignment.active = True
        else:
            assignment = UserJobRole(user_id=user_id, job_role_id=job_role_id)
            self.db.add(assignment)
        self.db.flush()
        record_audit(self.db, AuditAction.JOB_ROLE_ASSIGNED, "UserJobRole", assignment.id, actor)
        return assignment

    def evaluate_capability(
        self,
        subject_user_id: str,
        evaluator_user_id: str,
        stratum_assessed: Optional[StratumLevel] = None,
        potential_stratum: Optional[StratumLevel] = None,
        time_span_months: Optional[int] = None,
        job_role_id: Optional[int] = None,
        evidence: Optional[str] = None,
        gaps: Optional[Dict[str, Any]] = None,
        recommendations: Optional[str] = None,
        actor: Optional[Dict[str, str]] = None
    ) -> CapabilityEvaluation:
        """
        Registra uma avaliação. Sem estrato informado, infere pelo time-span
        em meses. Com função vinculada, calcula o score de cada capacidade
        pelo peso da função, descontando lacunas descritas em `gaps`.
        """
        stratum = stratum_assessed
        if stratum is None:
            if time_span_months is None:
                raise ValueError("Informe o estrato avaliado ou o time-span em meses")
            stratum = infer_stratum(time_span_months)

        capability_scores = None
        if job_role_id is not None:
            role = self.db.query(JobRole).filter(JobRole.id == job_role_id).first()
            if not role:
                raise NotFoundError("Função não encontrada")
            if role.capabilities:
                capability_scores = compute_capability_scores(role.capabilities, gaps)

        evaluation = CapabilityEvaluation(
            subject_user_id=subject_user_id,
            evaluator_user_id=evaluator_user_id,
            job_role_id=job_role_id,
            stratum_assessed=stratum,
            potential_stratum=potential_stratum,
            time_span_months=time_span_months,
            evidence=evidence,
            gaps=gaps,
            recommendations=recommendations,
            capability_scores=capability_scores
        )
        self.db.add(evaluation)
        self.db.flush()
        record_audit(
            self.db, AuditAction.CAPABILITY_EVALUATION_CREATE, "CapabilityEvaluation", evaluation.id, actor,
            new_values={"stratum_assessed": stratum.value, "subject_user_id": subject_user_id}
        )
        return evaluation

    def list_user_evaluations(self, user_id: str, limit: int = 50) -> List[CapabilityEvaluation]:
        return self.db.query(CapabilityEvaluation).filter(
            CapabilityEvaluation.subject_user_id == user_id
        ).order_by(
            CapabilityEvaluation.created_at.desc(),
            CapabilityEvaluation.id.desc()
        ).limit(limit).all()

    def latest_evaluation(self, user_id: str) -> Optional[CapabilityEvaluation]:
        evaluations = self.list_user_evaluations(user_id, limit=1)
        return evaluations[0] if evaluations else None

    def match_user_to_roles(self, user_id: str, limit: int = 20) -> List[Dict[str, Any]]:
        """
        Ranqueia funções ativas pela última avaliação do usuário. Sem
        avaliação, devolve as primeiras funções sem score.
        """
        roles = self.db.query(JobRole).filter(JobRole.active == True).order_by(JobRole.id).limit(limit * 3).all()
        last_eval = self.latest_evaluation(user_id)
        if last_eval is None:
            return [serialize_role(r) for r in roles[:limit]]

        scored = [
            (fit_score(last_eval.stratum_assessed, r.required_min_stratum, r.required_max_stratum, last_eval.potential_stratum), r)
            for r in roles
        ]
        scored.sort(key=lambda x: x[0], reverse=True)
        return [serialize_role(r, score) for score, r in scored[:limit]]

    def batch_import(
        self,
        groups: Optional[List[Dict[str, Any]]] = None,
        occupations: Optional[List[Dict[str, Any]]] = None,
        roles: Optional[List[Dict[str, Any]]] = None,
        actor: Optional[Dict[str, str]] = None
    ) -> Dict[str, int]:
        counts = {"groups": 0, "occupations": 0, "roles": 0}
        for g in sorted(groups or [], key=lambda x: x["level"]):
            self.upsert_group(actor=actor, **g)
            counts["groups"] += 1
        for o in occupations or []:
            self.upsert_occupation(actor=actor, **o)
            counts["occupations"] += 1
        for r in roles or []:
            self.create_job_role(actor=actor, **r)
            counts["roles"] += 1
        self.db.commit()
        return counts
