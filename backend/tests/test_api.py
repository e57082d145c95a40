import json

import pytest

from app.datalayer import CID10_FILES, Cid10Importer
from app.services.occupation_capability_service import OccupationCapabilityService


@pytest.fixture
def imported_cid10(db, tmp_path):
    (tmp_path / CID10_FILES["categories"]).write_text(json.dumps([
        {"pk": 1, "fields": {"code": "A00", "short_name": "Cólera", "long_name": "Cólera"}},
    ]), encoding="utf-8")
    (tmp_path / CID10_FILES["subcategories"]).write_text(json.dumps([
        {"pk": 10, "fields": {"category": 1, "code": 0, "long_name": "Cólera devida a Vibrio cholerae"}},
    ]), encoding="utf-8")
    Cid10Importer(db).run(str(tmp_path))


class TestCodingApi:

    def test_search(self, client, imported_cid10):
        response = client.get("/api/coding/search", params={"q": "cólera", "kind": "CID10"})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert [c["code"] for c in body["data"]] == ["A00", "A00.0"]

    def test_detail_and_not_found_envelope(self, client, imported_cid10):
        detail = client.get("/api/coding/codes/A00.0").json()
        assert detail["data"]["parent"]["code"] == "A00"

        response = client.get("/api/coding/codes/Z99")
        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Código não encontrado"}

    def test_chapters_stats_and_suggest(self, client, imported_cid10):
        assert client.get("/api/coding/chapters").json() == {"success": True, "data": []}
        assert client.get("/api/coding/stats").json()["data"]["total"] == 2
        suggestions = client.get("/api/coding/suggest", params={"text": "suspeita de cólera"}).json()["data"]
        assert suggestions[0]["code"] == "A00"

    def test_deactivate(self, client, imported_cid10):
        code_id = client.get("/api/coding/codes/A00.0").json()["data"]["id"]

        response = client.delete(f"/api/coding/codes/{code_id}")

        assert response.json()["data"]["active"] is False
        assert client.delete("/api/coding/codes/9999").status_code == 404

    def test_code_system_and_bulk_import(self, client):
        created = client.post("/api/coding/systems", json={"kind": "CIAP2", "name": "CIAP-2"})
        assert created.status_code == 200
        assert created.json()["data"]["kind"] == "CIAP2"

        response = client.post("/api/coding/systems/CIAP2/codes", json={
            "codes": [
                {"code": "K", "display": "Aparelho circulatório"},
                {"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K"},
            ]
        })
        assert response.json() == {"success": True, "data": {"imported": 2}}

    def test_bulk_import_without_system(self, client):
        response = client.post("/api/coding/systems/NURSING/codes", json={"codes": [{"code": "X", "display": "X"}]})

        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_bulk_import_hierarchy_error(self, client):
        client.post("/api/coding/systems", json={"kind": "CIAP2", "name": "CIAP-2"})

        response = client.post("/api/coding/systems/CIAP2/codes", json={
            "codes": [{"code": "K86", "display": "Hipertensão sem complicações", "parent_code": "K"}]
        })

        assert response.status_code == 400
        assert response.json() == {"success": False, "error": "Código pai K não encontrado para K86"}

    def test_validation_errors_use_envelope(self, client):
        response = client.post("/api/coding/systems", json={"kind": "CID10", "name": "  "})

        assert response.status_code == 422
        assert response.json()["success"] is False
        assert response.json()["details"]


class TestOccupationsApi:

    def test_batch_import_search_and_tree(self, client):
        response = client.post("/api/occupations/import", json={
            "groups": [
                {"code": "MSG:22", "name": "Profissionais da saúde", "level": 2, "parent_code": "GG:2"},
                {"code": "GG:2", "name": "Profissionais das ciências", "level": 1},
            ],
            "occupations": [{"code": "225125", "title": "Médico clínico"}],
            "roles": [{"title": "Clínico", "required_min_stratum": "S2", "occupation_code": "225125"}],
        })
        assert response.json() == {"success": True, "data": {"groups": 2, "occupations": 1, "roles": 1}}

        found = client.get("/api/occupations/search", params={"q": "clínico"}).json()["data"]
        assert [o["code"] for o in found] == ["225125"]

        tree = client.get("/api/occupations/groups/tree").json()["data"]
        assert tree[0]["children"][0]["code"] == "MSG:22"

    def test_batch_import_hierarchy_error(self, client):
        response = client.post("/api/occupations/import", json={
            "groups": [
                {"code": "GG:2", "name": "Profissionais das ciências", "level": 1},
                {"code": "SG:225", "name": "Médicos", "level": 3, "parent_code": "GG:2"},
            ]
        })

        assert response.status_code == 400
        assert response.json()["success"] is False

    def test_job_role_evaluation_and_matches(self, client):
        role = client.post("/api/occupations/job-roles", json={
            "title": "Supervisor de enfermagem",
            "required_min_stratum": "S2",
            "required_max_stratum": "S3",
            "capabilities": {"lideranca": 0.8},
        }).json()["data"]
        assert role["required_min_stratum"] == "S2"

        assigned = client.post("/api/occupations/assignments", json={"user_id": "u-1", "job_role_id": role["id"]})
        assert assigned.json()["data"]["active"] is True

        evaluation = client.post("/api/occupations/evaluations", json={
            "subject_user_id": "u-1",
            "evaluator_user_id": "u-9",
            "time_span_months": 10,
            "job_role_id": role["id"],
            "gaps": {"lideranca": "Evita conflitos"},
        }).json()["data"]
        assert evaluation["stratum_assessed"] == "S2"
        assert evaluation["capability_scores"]["lideranca"] == pytest.approx(0.7)

        history = client.get("/api/occupations/users/u-1/evaluations").json()["data"]
        assert [e["id"] for e in history] == [evaluation["id"]]

        matches = client.get("/api/occupations/users/u-1/matches").json()["data"]
        assert matches[0]["id"] == role["id"]
        assert matches[0]["fit_score"] == pytest.approx(0.77)

    def test_invalid_stratum_band(self, client):
        response = client.post("/api/occupations/job-roles", json={
            "title": "Diretoria", "required_min_stratum": "S5", "required_max_stratum": "S3"
        })

        assert response.status_code == 400

    def test_evaluation_requires_stratum_or_time_span(self, client):
        response = client.post("/api/occupations/evaluations", json={
            "subject_user_id": "u-1", "evaluator_user_id": "u-9"
        })

        assert response.status_code == 422

    def test_evaluation_for_unknown_role(self, client):
        response = client.post("/api/occupations/evaluations", json={
            "subject_user_id": "u-1", "evaluator_user_id": "u-9", "stratum_assessed": "S1", "job_role_id": 404
        })

        assert response.status_code == 404
        assert response.json() == {"success": False, "error": "Função não encontrada"}

    def test_assign_unknown_role(self, client):
        response = client.post("/api/occupations/assignments", json={"user_id": "u-1", "job_role_id": 404})

        assert response.status_code == 404

    @pytest.mark.parametrize("method,path,payload", [
        ("create_job_role", "/api/occupations/job-roles", {"title": "Plantonista", "required_min_stratum": "S1"}),
        ("assign_user_role", "/api/occupations/assignments", {"user_id": "u-1", "job_role_id": 1}),
        ("evaluate_capability", "/api/occupations/evaluations",
         {"subject_user_id": "u-1", "evaluator_user_id": "u-9", "stratum_assessed": "S2"}),
    ])
    def test_unexpected_errors_use_envelope(self, client, monkeypatch, method, path, payload):
        def fail(*args, **kwargs):
            raise RuntimeError("banco indisponível")

        monkeypatch.setattr(OccupationCapabilityService, method, fail)

        response = client.post(path, json=payload)

        assert response.status_code == 500
        assert response.json()["success"] is False
        assert "banco indisponível" in response.json()["error"]


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
