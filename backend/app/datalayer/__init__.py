from .importers import (
    Cid10Importer,
    CID10_FILES,
    CboImporter,
    CBO_FILES,
    ImportSummary
)

__all__ = [
    "Cid10Importer",
    "CID10_FILES",
    "CboImporter",
    "CBO_FILES",
    "ImportSummary"
]
