import logging
import subprocess
from contextlib import asynccontextmanager
from pathlib import Path

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from fastapi.staticfiles import StaticFiles
from sqlalchemy.exc import SQLAlchemyError

from lembur.api.auth import router as auth_router
from lembur.api.overtime import router as overtime_router
from lembur.api.users import router as users_router
from lembur.core.config import settings
from lembur.core.errors import LemburError

logger = logging.getLogger(__name__)

_PROJECT_ROOT = Path(__file__).resolve().parent.parent

MSG_GENERIC_FAILURE = "Terjadi kesalahan. Silakan coba lagi."


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Run Alembic migrations on startup."""
    if settings.RUN_MIGRATIONS_ON_STARTUP:
        logger.info("Running Alembic migrations...")
        try:
            result = subprocess.run(
                ["alembic", "upgrade", "head"],
                capture_output=True,
                text=True,
                cwd=_PROJECT_ROOT,
            )
            if result.returncode != 0:
                logger.error("Alembic migration failed:\n%s", result.stderr)
            else:
                logger.info("Migrations applied successfully:\n%s", result.stdout)
        except Exception as exc:
            logger.exception("Failed to run migrations: %s", exc)

    if settings.PHOTO_GATE_ENABLED and not settings.GEMINI_API_KEY:
        logger.warning(
            "PHOTO_GATE_ENABLED aktif tetapi GEMINI_API_KEY kosong: "
            "semua check-in/check-out akan ditolak dengan \"Validasi foto gagal\""
        )

    yield

    logger.info("Shutting down Absensi Lembur backend.")


app = FastAPI(
    title="Absensi Lembur API",
    description="Pencatatan lembur pegawai dengan foto, lokasi, dan verifikasi admin.",
    version="0.1.0",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.CORS_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(LemburError)
async def lembur_error_handler(request: Request, exc: LemburError) -> JSONResponse:
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


@app.exception_handler(SQLAlchemyError)
async def database_error_handler(request: Request, exc: SQLAlchemyError) -> JSONResponse:
    logger.exception("Database error on %s %s", request.method, request.url.path)
    return JSONResponse(status_code=500, content={"detail": MSG_GENERIC_FAILURE})


app.include_router(auth_router, prefix="/api/auth", tags=["Auth"])
app.include_router(users_router, prefix="/api/users", tags=["Users"])
app.include_router(overtime_router, prefix="/api/overtime", tags=["Overtime"])

Path(settings.PHOTO_STORAGE_DIR).mkdir(parents=True, exist_ok=True)
app.mount(
    settings.PHOTO_BASE_URL,
    StaticFiles(directory=settings.PHOTO_STORAGE_DIR),
    name="photos",
)


@app.get("/health", tags=["System"])
async def health_check() -> dict:
    return {"status": "ok"}
