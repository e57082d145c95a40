import logging

from fastapi import FastAPI, HTTPException
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from app.config import settings
from app.database import engine, Base
from app.logging_config import setup_logging
from app.routers import (
    coding_router,
    occupations_router
)

setup_logging()
logger = logging.getLogger(__name__)

app = FastAPI(
    title="Catálogo de Códigos Clínicos e Ocupacionais",
    description="CID-10, CBO e matching de capacidade por estrato",
    version="1.0.0"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(coding_router)
app.include_router(occupations_router)


@app.exception_handler(HTTPException)
async def envelope_http_exception(request, exc: HTTPException):
    if isinstance(exc.detail, dict) and "success" in exc.detail:
        content = exc.detail
    else:
        content = {"success": False, "error": exc.detail}
    return JSONResponse(status_code=exc.status_code, content=content, headers=exc.headers)


@app.exception_handler(RequestValidationError)
async def envelope_validation_error(request, exc: RequestValidationError):
    return JSONResponse(
        status_code=422,
        content={"success": False, "error": "Dados inválidos", "details": jsonable_encoder(exc.errors())}
    )


@app.on_event("startup")
def startup():
    Base.metadata.create_all(bind=engine)
    logger.info("Tabelas verificadas em %s", engine.url.render_as_string(hide_password=True))


@app.get("/")
def root():
    return {
        "message": "Catálogo de Códigos Clínicos e Ocupacionais API",
        "version": "1.0.0",
        "docs": "/docs"
    }


@app.get("/health")
def health_check():
    return {"status": "healthy"}


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
