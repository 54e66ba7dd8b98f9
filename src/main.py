"""
src/main.py
============================================
FastAPI Application for Fence Consistency
============================================

Entry point of the fence consistency service. Serves fence geometry as
GeoJSON (one Feature per fence), a validation report that combines
structural defects with duplicate groups, and the remediation actions
(repair, deactivate invalid, deactivate duplicates).

Architecture Overview:
---------------------
- REST API: /fences/* routes (src/Controller/Routes/fences.py)
- Services: Reassembler, Duplicate Grouper, Structural Validator,
  Remediation Controller (src/Services)
- Storage: PostGIS through SQLAlchemy (src/Repositories/fence.py)
"""

# Environment Configuration
from dotenv import load_dotenv
load_dotenv()

# FastAPI Core
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware
from contextlib import asynccontextmanager

from src.Core.config import settings
from src.Controller.Routes import fences

# Database
from src.DB.session import SessionLocal
from src.Repositories.fence import count_fences


def _parse_origins(csv_value: str):
    """
    Parse comma-separated origin values into a list for CORS configuration.

    Examples:
        "*" → (True, ["*"])
        "https://app.com,https://admin.app.com" → (False, ["https://app.com", "https://admin.app.com"])
        "" → (False, [])
    """
    if not csv_value:
        return (False, [])

    csv_value = csv_value.strip()

    if csv_value == "*":
        return (True, ["*"])

    origins = [origin.strip() for origin in csv_value.split(",") if origin.strip()]
    return (False, origins)


_http_allow_all, _http_origins = _parse_origins(settings.HTTP_ALLOWED_ORIGINS)


# ============================================================
# APPLICATION LIFESPAN MANAGEMENT
# ============================================================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Report the fence table state on startup.

    A database that is not reachable at startup is reported but does not
    stop the application; every request opens its own session.
    """
    print(f"[STARTUP] Fence table: {settings.FENCES_TABLE}")
    print(f"[STARTUP] Canonical tolerance: {settings.CANONICAL_TOLERANCE_DEG} deg")

    try:
        with SessionLocal() as db:
            count = count_fences(db)
        print(f"[STARTUP] ✅ Database contains {count} fences with geometry")
    except Exception as e:
        print(f"[STARTUP] ⚠️  Could not count fences: {e}")

    print("[STARTUP] ✅ Application initialization complete")

    yield

    print("[SHUTDOWN] 🛑 Application shutdown initiated")


# ============================================================
# APPLICATION INSTANCE CREATION
# ============================================================
app = FastAPI(
    title=settings.PROJECT_NAME,
    version=settings.PROJECT_VERSION,
    lifespan=lifespan
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_http_origins,
    allow_credentials=not _http_allow_all,
    allow_methods=["*"],
    allow_headers=["*"],
)


# ============================================================
# HEALTH CHECK ENDPOINT
# ============================================================
@app.get("/health")
def health():
    """Returns 200 OK while the application is serving requests."""
    return {"status": "ok"}


# ============================================================
# REST API ROUTE REGISTRATION
# ============================================================
app.include_router(fences.router, prefix="/fences", tags=["fences"])


# ============================================================
# API INFORMATION ENDPOINT
# ============================================================
@app.get("/api")
def api_info():
    """
    API information and configuration summary.
    """
    return {
        "status": "online",
        "version": settings.PROJECT_VERSION,
        "features": {
            "fences_table": settings.FENCES_TABLE,
            "canonical_tolerance_deg": settings.CANONICAL_TOLERANCE_DEG,
            "repair_max_batch": settings.REPAIR_MAX_BATCH
        },
        "endpoints": {
            "fences": "/fences/",
            "validate": "/fences/validate",
            "fix": "/fences/validate/fix",
            "mark_inactive": "/fences/validate/mark-inactive",
            "dedupe": "/fences/validate/dedupe",
            "health": "/health"
        }
    }
