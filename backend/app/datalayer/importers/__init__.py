from .cid10_importer import Cid10Importer, CID10_FILES
from .cbo_importer import CboImporter, CBO_FILES
from .summary import ImportSummary

__all__ = [
    "Cid10Importer",
    "CID10_FILES",
    "CboImporter",
    "CBO_FILES",
    "ImportSummary"
]
