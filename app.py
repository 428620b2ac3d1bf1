import logging
from contextlib import asynccontextmanager
from datetime import datetime, timezone
from typing import Any, Optional

from fastapi import Depends, FastAPI, Query, Request
from fastapi.encoders import jsonable_encoder
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from sqlalchemy import text
from sqlalchemy.exc import IntegrityError, OperationalError, SQLAlchemyError
from sqlalchemy.exc import TimeoutError as PoolTimeoutError
from sqlalchemy.orm import Session
from starlette.exceptions import HTTPException as StarletteHTTPException

import schemas
from auth import (
    ADMIN_IDENTITY,
    check_admin_credentials,
    create_admin_token,
    current_identity,
    require_admin,
)
from config import Settings, get_settings
from database import check_connection, get_db, init_db
from errors import AppError, AuthenticationError, ValidationError
from metadata import MetadataFetcher
from services import SORT_KEYS, RecipeService
from validators import validate_recipe_id

API_VERSION = "1.0.0"

settings = get_settings()

logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger("recipe_link_saver")


# =========================
# App
# =========================
@asynccontextmanager
async def lifespan(app: FastAPI):
    # DB が落ちていても起動はする (/health が 503 を返す)
    if not check_connection():
        logger.warning("Starting without a database connection")
    else:
        try:
            init_db()
            logger.info("Database connected")
        except SQLAlchemyError:
            logger.exception("Could not create database tables")
    yield


app = FastAPI(title="Recipe Link Saver", version=API_VERSION, lifespan=lifespan)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
    allow_headers=["Content-Type", "Authorization"],
)


@app.middleware("http")
async def log_requests(request: Request, call_next):
    client = request.client.host if request.client else "-"
    logger.info("%s %s - IP: %s", request.method, request.url.path, client)
    return await call_next(request)


# =========================
# Envelopes
# =========================
def now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def ok(data: Any = None, message: str = "OK", status_code: int = 200, **extra) -> JSONResponse:
    body = {"success": True, "message": message, "data": data, **extra, "timestamp": now_iso()}
    return JSONResponse(jsonable_encoder(body), status_code=status_code)


def fail(status_code: int, kind: str, message: str, detail: Optional[str] = None) -> JSONResponse:
    body = {
        "success": False,
        "status": "fail" if 400 <= status_code < 500 else "error",
        "kind": kind,
        "error": message,
        "timestamp": now_iso(),
    }
    if detail and not get_settings().is_production:
        body["detail"] = detail
    return JSONResponse(body, status_code=status_code)


def _request_context(request: Request) -> dict:
    return {
        "method": request.method,
        "path": request.url.path,
        "path_params": dict(request.path_params),
        "query": dict(request.query_params),
    }


@app.exception_handler(AppError)
async def handle_app_error(request: Request, exc: AppError):
    if exc.status_code >= 500:
        logger.error("%s: %s %s", exc.kind, exc.message, _request_context(request))
    return fail(exc.status_code, exc.kind, exc.message)


@app.exception_handler(RequestValidationError)
async def handle_request_validation(request: Request, exc: RequestValidationError):
    errors = exc.errors()
    first = errors[0] if errors else {}
    if first.get("type") == "json_invalid":
        message = "Invalid JSON in request body"
    elif first.get("type") == "extra_forbidden":
        field = first.get("loc", ["", "?"])[-1]
        message = f"Field '{field}' cannot be updated"
    else:
        loc = ".".join(str(p) for p in first.get("loc", []) if p != "body")
        message = f"Invalid request: {loc} {first.get('msg', '')}".strip()
    return fail(400, "validation", message)


@app.exception_handler(SQLAlchemyError)
async def handle_store_error(request: Request, exc: SQLAlchemyError):
    logger.error("Store failure %s", _request_context(request), exc_info=exc)
    if isinstance(exc, IntegrityError):
        return fail(409, "conflict", "Duplicate entry. This record already exists.", str(exc.orig))
    if isinstance(exc, (OperationalError, PoolTimeoutError)):
        return fail(503, "store", "Database is unavailable. Please try again.", str(exc))
    return fail(500, "store", "Database operation failed", str(exc))


@app.exception_handler(StarletteHTTPException)
async def handle_http_exception(request: Request, exc: StarletteHTTPException):
    if exc.status_code == 404:
        return fail(
            404,
            "not_found",
            "Route not found",
            f"The requested route {request.method} {request.url.path} does not exist",
        )
    return fail(exc.status_code, "http", str(exc.detail))


@app.exception_handler(Exception)
async def handle_unexpected(request: Request, exc: Exception):
    logger.error("Unhandled error %s", _request_context(request), exc_info=exc)
    return fail(500, "error", "Something went wrong", repr(exc))


# =========================
# Dependencies
# =========================
def get_fetcher(settings: Settings = Depends(get_settings)) -> MetadataFetcher:
    return MetadataFetcher(timeout=settings.metadata_timeout)


def get_service(
    db: Session = Depends(get_db),
    fetcher: MetadataFetcher = Depends(get_fetcher),
    settings: Settings = Depends(get_settings),
) -> RecipeService:
    return RecipeService(db, fetcher, strict_ratings=settings.strict_ratings)


def recipe_out(recipe) -> dict:
    return schemas.Recipe.model_validate(recipe).model_dump(mode="json")


# =========================
# Health / info
# =========================
@app.get("/health")
def health(db: Session = Depends(get_db), settings: Settings = Depends(get_settings)):
    try:
        db.execute(text("SELECT 1"))
    except SQLAlchemyError as e:
        logger.error("Health check could not reach the database: %s", e)
        return JSONResponse(
            {
                "status": "Service Unavailable",
                "database": "disconnected",
                "environment": settings.app_env,
                "timestamp": now_iso(),
            },
            status_code=503,
        )
    return {
        "status": "OK",
        "database": "connected",
        "environment": settings.app_env,
        "timestamp": now_iso(),
    }


@app.get("/api")
def api_info():
    return {
        "message": "Recipe Link Saver API",
        "version": API_VERSION,
        "endpoints": {
            "health": "GET /health",
            "auth": {
                "adminLogin": "POST /api/auth/admin",
                "verify": "POST /api/auth/verify",
                "me": "GET /api/auth/me",
                "logout": "POST /api/auth/logout",
            },
            "recipes": {
                "create": "POST /api/recipes (admin)",
                "getAll": "GET /api/recipes",
                "update": "PUT /api/recipes/{id} (admin)",
                "delete": "DELETE /api/recipes/{id} (admin)",
                "extractMeta": "GET /api/recipes/extract-meta?url={url}",
                "preview": "GET /api/recipes/preview?url={url}",
            },
        },
        "timestamp": now_iso(),
    }


# =========================
# Auth
# =========================
@app.post("/api/auth/admin")
def admin_login(body: schemas.AdminLogin, settings: Settings = Depends(get_settings)):
    if not body.admin_id or not body.admin_password:
        raise ValidationError("Admin ID and password are required")
    if not check_admin_credentials(body.admin_id, body.admin_password, settings):
        logger.warning("Rejected admin login for id %r", body.admin_id)
        raise AuthenticationError("Invalid admin credentials")
    token = create_admin_token(settings)
    return ok(
        {"token": token, "user": ADMIN_IDENTITY.model_dump()},
        "Admin authentication successful",
    )


@app.post("/api/auth/verify")
def verify_token(identity: schemas.AdminIdentity = Depends(current_identity)):
    return ok({"user": identity.model_dump()}, "Token is valid")


@app.get("/api/auth/me")
def me(identity: schemas.AdminIdentity = Depends(current_identity)):
    return ok({"user": identity.model_dump()}, "Current user")


@app.post("/api/auth/logout")
def logout():
    # トークンはステートレス。クライアント側で破棄するだけ
    return ok(None, "Logout successful")


# =========================
# Recipes
# =========================
@app.post("/api/recipes", status_code=201)
def create_recipe(
    body: schemas.RecipeCreate,
    _admin: schemas.AdminIdentity = Depends(require_admin),
    service: RecipeService = Depends(get_service),
):
    recipe = service.save_recipe(
        body.url,
        title=body.title,
        memo=body.memo,
        rating=body.rating,
        image_url=body.image_url,
    )
    return ok(recipe_out(recipe), "Recipe created successfully", status_code=201)


@app.get("/api/recipes")
def list_recipes(
    q: Optional[str] = Query(default=None),
    sort: Optional[str] = Query(default=None, description=", ".join(SORT_KEYS)),
    service: RecipeService = Depends(get_service),
):
    recipes = [recipe_out(r) for r in service.list_recipes(q=q, sort=sort)]
    return ok(recipes, "Recipes retrieved successfully", count=len(recipes))


@app.get("/api/recipes/extract-meta")
def extract_meta(
    url: Optional[str] = Query(default=None),
    service: RecipeService = Depends(get_service),
):
    metadata = service.extract_metadata(url)
    return ok(
        {"url": url, "metadata": metadata.to_dict()},
        "Metadata extracted successfully",
    )


@app.get("/api/recipes/preview")
def preview(
    url: Optional[str] = Query(default=None),
    service: RecipeService = Depends(get_service),
):
    info = service.extract_preview_metadata(url)
    if info is None:
        return ok(None, "No preview available")
    return ok(info.model_dump(), "Preview generated")


@app.put("/api/recipes/{recipe_id}")
def update_recipe(
    recipe_id: str,
    body: schemas.RecipeUpdate,
    _admin: schemas.AdminIdentity = Depends(require_admin),
    service: RecipeService = Depends(get_service),
):
    recipe = service.update_recipe(validate_recipe_id(recipe_id), body)
    return ok(recipe_out(recipe), "Recipe updated successfully")


@app.delete("/api/recipes/{recipe_id}")
def delete_recipe(
    recipe_id: str,
    _admin: schemas.AdminIdentity = Depends(require_admin),
    service: RecipeService = Depends(get_service),
):
    deleted = service.delete_recipe(validate_recipe_id(recipe_id))
    return ok(
        {"deleted_recipe": deleted.model_dump(mode="json")},
        "Recipe deleted successfully",
    )


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("app:app", host="0.0.0.0", port=settings.port)
