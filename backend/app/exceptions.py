class CatalogError(Exception):
    """Erro base do catálogo de códigos e ocupações."""


class NotFoundError(CatalogError):
    pass


class HierarchyError(CatalogError):
    """Violação de hierarquia (nível do pai, grupo de ocupação, faixa de estrato)."""


class FixtureError(CatalogError):
    """Arquivo de fixture ausente ou em formato inesperado."""
