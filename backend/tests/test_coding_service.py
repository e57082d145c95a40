import pytest

from app.exceptions import HierarchyError, NotFoundError
from app.models.audit_log import AuditLog, AuditAction
from app.models.medical_code import (
    CodeSystem, MedicalCode, CodeSystemKind, SexRestriction, CrossAsterisk
)
from app.services.coding_service import CodingService, SearchCache, build_searchable_text


@pytest.fixture
def service(db):
    return CodingService(db, cache=SearchCache(30))


@pytest.fixture
def catalog(db):
    system = CodeSystem(kind=CodeSystemKind.CID10, version="SSF", name="CID-10")
    db.add(system)
    db.flush()

    def add(code, display, parent=None, chapter=None, sex=None, cross=None, synonyms=None):
        record = MedicalCode(
            system_id=system.id,
            code=code,
            display=display,
            short_description=display,
            is_category=parent is None,
            chapter=chapter,
            parent=parent,
            sex_restriction=sex,
            cross_asterisk=cross,
            synonyms=synonyms or [],
            searchable_text=build_searchable_text(code, display, " ".join(synonyms or [])),
        )
        db.add(record)
        db.flush()
        return record

    a00 = add("A00", "Cólera", chapter="I")
    add("A00.0", "Cólera devida a Vibrio cholerae", a00, chapter="I")
    add("A00.1", "Cólera El Tor", a00, chapter="I")
    a01 = add("A01", "Febres tifóide e paratifóide", chapter="I")
    add("A01.0", "Febre tifóide", a01, chapter="I", synonyms=["Infecção por Salmonella typhi"])
    n40 = add("N40", "Hiperplasia da próstata", chapter="XIV", sex=SexRestriction.MALE)
    add("N40.0", "Hiperplasia benigna", n40, chapter="XIV", sex=SexRestriction.MALE)
    n71 = add("N71", "Doença inflamatória do útero", chapter="XIV", sex=SexRestriction.FEMALE)
    add("N71.0", "Doença inflamatória aguda do útero", n71, chapter="XIV",
        sex=SexRestriction.FEMALE, cross=CrossAsterisk.MANIFESTATION)
    add("G01", "Meningite em doenças bacterianas", chapter="VI", cross=CrossAsterisk.ETIOLOGY)
    db.commit()
    return system


def codes_of(results):
    return [r["code"] for r in results]


class TestSearch:

    def test_matches_code_and_display(self, service, catalog):
        assert codes_of(service.search_codes("A00")) == ["A00", "A00.0", "A00.1"]
        assert codes_of(service.search_codes("tifóide")) == ["A01", "A01.0"]

    def test_matches_synonyms_through_searchable_text(self, service, catalog):
        assert codes_of(service.search_codes("salmonella")) == ["A01.0"]

    def test_filters(self, service, catalog):
        assert codes_of(service.search_codes("A0", categories_only=True)) == ["A00", "A01"]
        assert codes_of(service.search_codes("doença", chapter="XIV")) == ["N71", "N71.0"]
        assert codes_of(service.search_codes("cólera", kind=CodeSystemKind.CID10, limit=2)) == ["A00", "A00.0"]
        assert service.search_codes("cólera", kind=CodeSystemKind.CIAP2) == []

    def test_gender_filter_keeps_unrestricted_codes(self, service, catalog):
        male = codes_of(service.search_codes_for_gender("N", SexRestriction.MALE))
        female = codes_of(service.search_codes_for_gender("N", SexRestriction.FEMALE))

        assert "N40" in male and "N71" not in male
        assert "N71.0" in female and "N40.0" not in female
        assert "A00" in codes_of(service.search_codes_for_gender("A00", SexRestriction.FEMALE))

    def test_inactive_codes_are_hidden(self, service, catalog, db):
        db.query(MedicalCode).filter(MedicalCode.code == "A00.1").one().active = False
        db.commit()

        assert codes_of(service.search_codes("A00")) == ["A00", "A00.0"]

    def test_wildcards_are_matched_literally(self, service, catalog):
        assert service.search_codes("A0_") == []
        assert service.search_codes("%") == []

    def test_results_are_cached_until_cleared(self, service, catalog, db):
        first = service.search_codes("cólera")
        db.query(MedicalCode).filter(MedicalCode.code == "A00.1").one().active = False
        db.commit()

        assert service.search_codes("cólera") == first
        service.cache.clear()
        assert "A00.1" not in codes_of(service.search_codes("cólera"))


class TestSearchCache:

    def test_entries_expire(self):
        cache = SearchCache(30)
        cache.set("k", [1])
        assert cache.get("k") == [1]

        expired = SearchCache(-1)
        expired.set("k", [1])
        assert expired.get("k") is None

    def test_clear(self):
        cache = SearchCache(30)
        cache.set("k", [1])
        cache.clear()
        assert cache.get("k") is None

    def test_size_is_bounded(self):
        cache = SearchCache(30, max_entries=2)
        for key in ("a", "b", "c", "d"):
            cache.set(key, [key])

        assert len(cache) == 2
        assert cache.get("a") is None
        assert cache.get("d") == ["d"]

    def test_expired_entries_are_pruned_first(self):
        cache = SearchCache(-1, max_entries=2)
        cache.set("a", [1])
        cache.set("b", [2])
        cache.set("c", [3])

        assert len(cache) == 1

    def test_reading_expired_key_twice(self):
        cache = SearchCache(-1)
        cache.set("k", [1])

        assert cache.get("k") is None
        assert cache.get("k") is None


class TestDetail:

    def test_detail_by_code_has_parent_and_path(self, service, catalog):
        detail = service.get_code_detail("A00.0")

        assert detail["parent"]["code"] == "A00"
        assert [p["code"] for p in detail["hierarchy_path"]] == ["A00"]

    def test_detail_by_id(self, service, catalog, db):
        a01 = db.query(MedicalCode).filter(MedicalCode.code == "A01").one()

        detail = service.get_code_detail(str(a01.id))

        assert detail["code"] == "A01"
        assert detail["parent"] is None
        assert detail["hierarchy_path"] == []

    def test_unknown_code(self, service, catalog):
        assert service.get_code_detail("Z99.9") is None

    def test_hierarchy_path_is_limited(self, service, db):
        system = CodeSystem(kind=CodeSystemKind.CIAP2, name="CIAP-2")
        db.add(system)
        db.flush()
        parent = None
        for i in range(8):
            parent = MedicalCode(system_id=system.id, code=f"L{i}", display=f"Nível {i}", parent=parent)
            db.add(parent)
        db.commit()

        detail = service.get_code_detail("L7")

        assert [p["code"] for p in detail["hierarchy_path"]] == ["L2", "L3", "L4", "L5", "L6"]


class TestChaptersAndStats:

    def test_list_chapters(self, service, catalog):
        chapters = service.list_chapters()

        assert [c["code"] for c in chapters] == ["I", "VI", "XIV"]
        assert chapters[0]["count"] == 5
        assert chapters[0]["name"] == "Doenças infecciosas e parasitárias"

    def test_codes_by_chapter(self, service, catalog):
        assert codes_of(service.get_codes_by_chapter("XIV")) == ["N40", "N40.0", "N71", "N71.0"]
        assert codes_of(service.get_codes_by_chapter("XIV", limit=1)) == ["N40"]

    def test_stats(self, service, catalog):
        assert service.get_code_stats(CodeSystemKind.CID10) == {
            "total": 10,
            "categories": 5,
            "with_sex_restriction": 4,
            "etiology_codes": 1,
            "manifestation_codes": 1,
        }

    def test_stats_for_empty_system(self, service, catalog):
        assert service.get_code_stats(CodeSystemKind.NURSING)["total"] == 0


class TestSuggest:

    def test_ranks_by_matched_terms(self, service, catalog):
        results = service.suggest_codes("Paciente com febre tifóide há 3 dias")

        assert codes_of(results[:2]) == ["A01", "A01.0"]
        assert [r["match_score"] for r in results[:2]] == [2, 2]

    def test_short_words_only_returns_nothing(self, service, catalog):
        assert service.suggest_codes("dor no pé") == []
        assert service.suggest_codes("   ") == []

    def test_limit_is_capped(self, service, catalog):
        assert len(service.suggest_codes("cólera doença hiperplasia febre", limit=50)) <= 15


class TestWrites:

    def test_upsert_code_system_by_kind_and_version(self, service, db):
        first = service.upsert_code_system(CodeSystemKind.CID11, "CID-11", version="2024")
        second = service.upsert_code_system(CodeSystemKind.CID11, "CID-11 MMS", version="2024")
        other = service.upsert_code_system(CodeSystemKind.CID11, "CID-11", version="2025")

        assert second.id == first.id
        assert second.name == "CID-11 MMS"
        assert other.id != first.id

    def test_bulk_import_resolves_parents_in_order(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()

        result = service.bulk_import_codes(CodeSystemKind.CIAP2, [
            {"code": "K", "display": "Aparelho circulatório"},
            {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K", "synonyms": ["HAS"]},
        ], rebuild_search_text=True)

        assert result == {"imported": 2}
        k86 = db.query(MedicalCode).filter(MedicalCode.code == "K86").one()
        assert k86.parent.code == "K"
        assert k86.is_category is False
        assert k86.parent.is_category is True
        assert "has" in k86.searchable_text
        assert db.query(AuditLog).filter(AuditLog.action == AuditAction.DATA_IMPORT).count() == 1

    def test_bulk_import_updates_existing_codes(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()
        service.bulk_import_codes(CodeSystemKind.CIAP2, [{"code": "K86", "display": "HAS"}])

        service.bulk_import_codes(CodeSystemKind.CIAP2, [{"code": "K86", "display": "Hipertensão"}])

        assert db.query(MedicalCode).count() == 1
        assert db.query(MedicalCode).one().display == "Hipertensão"

    def test_bulk_import_rejects_subcategory_as_parent(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()

        with pytest.raises(HierarchyError):
            service.bulk_import_codes(CodeSystemKind.CIAP2, [
                {"code": "K", "display": "Aparelho circulatório"},
                {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K"},
                {"code": "K86.1", "display": "Hipertensão leve", "parent_code": "K86"},
            ])

        assert db.query(MedicalCode).count() == 0

    def test_bulk_import_rejects_unknown_parent(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()

        with pytest.raises(HierarchyError):
            service.bulk_import_codes(CodeSystemKind.CIAP2, [
                {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K"},
            ])

    def test_bulk_import_rejects_parent_with_children_becoming_subcategory(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()
        service.bulk_import_codes(CodeSystemKind.CIAP2, [
            {"code": "K", "display": "Aparelho circulatório"},
            {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K"},
        ])

        with pytest.raises(HierarchyError):
            service.bulk_import_codes(CodeSystemKind.CIAP2, [
                {"code": "A", "display": "Geral e inespecífico"},
                {"code": "K", "display": "Aparelho circulatório", "parent_code": "A"},
            ])

    def test_bulk_import_without_parent_code_keeps_hierarchy(self, service, db):
        service.upsert_code_system(CodeSystemKind.CIAP2, "CIAP-2")
        db.commit()
        service.bulk_import_codes(CodeSystemKind.CIAP2, [
            {"code": "K", "display": "Aparelho circulatório"},
            {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K", "synonyms": ["HAS"]},
        ])

        service.bulk_import_codes(CodeSystemKind.CIAP2, [{"code": "K86", "display": "Hipertensão"}])

        k86 = db.query(MedicalCode).filter(MedicalCode.code == "K86").one()
        assert k86.display == "Hipertensão"
        assert k86.parent.code == "K"
        assert k86.is_category is False
        assert k86.synonyms == ["HAS"]

    def test_bulk_import_requires_system(self, service):
        with pytest.raises(NotFoundError):
            service.bulk_import_codes(CodeSystemKind.NURSING, [{"code": "X", "display": "X"}])

    def test_deactivate_code(self, service, catalog, db):
        a00 = db.query(MedicalCode).filter(MedicalCode.code == "A00").one()

        result = service.deactivate_code(a00.id)

        assert result["active"] is False
        entry = db.query(AuditLog).filter(AuditLog.action == AuditAction.CODE_DEACTIVATED).one()
        assert entry.entity_key == "A00"
        assert "A00" not in codes_of(service.search_codes("A00"))

    def test_deactivate_unknown_code(self, service):
        with pytest.raises(NotFoundError):
            service.deactivate_code(404)
