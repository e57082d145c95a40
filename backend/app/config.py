import os


class Settings:
    """Configuração lida das variáveis de ambiente."""

    def __init__(self):
        self.database_url = os.getenv("DATABASE_URL", "sqlite:///./catalogo.sqlite").replace(
            "postgres://", "postgresql://", 1
        )
        self.log_level = os.getenv("LOG_LEVEL", "INFO").upper()
        self.import_batch_size = int(os.getenv("IMPORT_BATCH_SIZE", "500"))
        self.import_progress_every = int(os.getenv("IMPORT_PROGRESS_EVERY", "2000"))
        self.search_cache_ttl_seconds = int(os.getenv("SEARCH_CACHE_TTL_SECONDS", "30"))
        self.cors_origins = [
            o.strip() for o in os.getenv("CORS_ORIGINS", "*").split(",") if o.strip()
        ]


settings = Settings()
