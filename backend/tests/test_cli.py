import json

from app import cli
from app.datalayer import CID10_FILES


def test_missing_fixture_directory_returns_error(tmp_path):
    assert cli.main(["import-cid10", "--dir", str(tmp_path / "nao-existe")]) == 1


def test_import_cid10_prints_summary(tmp_path, capsys):
    (tmp_path / CID10_FILES["categories"]).write_text(json.dumps([
        {"pk": 1, "fields": {"code": "B20", "long_name": "Doença pelo HIV"}},
    ]), encoding="utf-8")
    (tmp_path / CID10_FILES["subcategories"]).write_text(json.dumps([
        {"pk": 1, "fields": {"category": 1, "code": 0, "long_name": "Doença pelo HIV resultando em infecções"}},
    ]), encoding="utf-8")

    assert cli.main(["import-cid10", "--dir", str(tmp_path), "--version", "TESTE"]) == 0

    summary = json.loads(capsys.readouterr().out)
    assert summary["source"] == "CID10"
    assert summary["upserted"] == {"categories": 1, "subcategories": 1}
