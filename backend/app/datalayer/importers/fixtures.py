"""
Leitura dos fixtures do SSF (JSON do Django e planilhas XLSX).

Cabeçalhos de planilha são normalizados (minúsculas, espaços viram "_")
e linhas totalmente vazias são descartadas.
"""

import json
import math
import os
import re
from typing import Any, Dict, List, Optional

import pandas as pd

from app.exceptions import FixtureError

Row = Dict[str, Any]


def normalize_header(header: Any) -> str:
    return re.sub(r"\s+", "_", str(header if header is not None else "").strip().lower())


def is_blank(value: Any) -> bool:
    if value is None:
        return True
    if isinstance(value, float) and math.isnan(value):
        return True
    if value is pd.NaT:
        return True
    return isinstance(value, str) and not value.strip()


def cell_to_string(value: Any) -> str:
    if is_blank(value):
        return ""
    return str(value).strip()


def cell_to_int(value: Any) -> Optional[int]:
    """Converte célula para inteiro, truncando decimais. Vazio ou não numérico vira None."""
    text = cell_to_string(value)
    if not text:
        return None
    try:
        number = float(text)
    except ValueError:
        return None
    if not math.isfinite(number):
        return None
    return int(number)


def is_json_int(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool)


def require_files(files: Dict[str, str]) -> None:
    missing = [f"{name}: {path}" for name, path in files.items() if not os.path.exists(path)]
    if missing:
        raise FixtureError("Arquivo não encontrado (" + "; ".join(missing) + ")")


def read_json_array(path: str) -> List[Any]:
    with open(path, encoding="utf-8") as f:
        try:
            parsed = json.load(f)
        except json.JSONDecodeError as e:
            raise FixtureError(f"JSON inválido em {path}: {e}") from e
    if not isinstance(parsed, list):
        raise FixtureError(f"JSON não é array: {path}")
    return parsed


def read_xlsx(path: str, sheet_name: Optional[str] = None) -> List[Row]:
    try:
        df = pd.read_excel(path, sheet_name=sheet_name if sheet_name is not None else 0, dtype=object)
    except ValueError as e:
        raise FixtureError(f"Aba não encontrada no XLSX {path}: {e}") from e

    df.columns = [normalize_header(c) for c in df.columns]

    rows = []
    for record in df.to_dict(orient="records"):
        row = {k: (None if is_blank(v) else v) for k, v in record.items()}
        if any(v is not None for v in row.values()):
            rows.append(row)
    return rows
