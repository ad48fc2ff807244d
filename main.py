import os
import time
import uuid

import structlog
from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

import database
from auth import router as auth_router, seed_admin
from cart import router as cart_router
from catalog import router as product_router
from errors import ShopError
from logging_config import add_context, clear_context, configure_logging
from orders import router as order_router

configure_logging()
logger = structlog.get_logger(__name__)

CORS_ORIGIN = os.getenv("CORS_ORIGIN", "http://localhost:5173")

app = FastAPI(title="Web Shop API")

app.add_middleware(
    CORSMiddleware,
    allow_origins=[origin.strip() for origin in CORS_ORIGIN.split(",")],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.on_event("startup")
def prepare_database():
    if database.db is None:
        logger.warning("DATABASE_URL / DATABASE_NAME not set, running without a database")
        return
    database.ensure_indexes()
    seed_admin()


@app.middleware("http")
async def log_requests(request: Request, call_next):
    clear_context()
    add_context(request_id=uuid.uuid4().hex[:12])
    started = time.perf_counter()
    try:
        response = await call_next(request)
    except Exception:
        _log_request(request, 500, started)
        raise
    _log_request(request, response.status_code, started)
    return response


def _log_request(request: Request, status: int, started: float) -> None:
    logger.info(
        "Request handled",
        method=request.method,
        path=request.url.path,
        status=status,
        duration_ms=round((time.perf_counter() - started) * 1000, 1),
    )


# ---------- Error envelope ----------

@app.exception_handler(ShopError)
async def handle_shop_error(request: Request, exc: ShopError):
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message})


@app.exception_handler(RequestValidationError)
async def handle_validation_error(request: Request, exc: RequestValidationError):
    messages = []
    for err in exc.errors():
        location = ".".join(str(part) for part in err.get("loc", ()) if part != "body")
        messages.append(f"{location}: {err.get('msg')}" if location else err.get("msg"))
    return JSONResponse(status_code=400, content={"error": "; ".join(messages)})


@app.exception_handler(StarletteHTTPException)
async def handle_http_error(request: Request, exc: StarletteHTTPException):
    message = "Route not found" if exc.status_code == 404 and exc.detail == "Not Found" else exc.detail
    return JSONResponse(status_code=exc.status_code, content={"error": message}, headers=getattr(exc, "headers", None))


@app.exception_handler(Exception)
async def handle_unexpected_error(request: Request, exc: Exception):
    logger.exception("Unhandled error", method=request.method, path=request.url.path)
    return JSONResponse(status_code=500, content={"error": "Something went wrong!"})


# ---------- Routes ----------

app.include_router(auth_router)
app.include_router(product_router)
app.include_router(cart_router)
app.include_router(order_router)


@app.get("/")
def read_root():
    return {"message": "Web Shop API Running"}


@app.get("/api/health")
def health():
    response = {
        "success": True,
        "backend": "running",
        "database": "not configured",
        "collections": [],
    }
    if database.db is not None:
        try:
            response["collections"] = database.db.list_collection_names()[:10]
            response["database"] = "connected"
        except Exception as e:
            logger.warning("Health check could not reach the database", error=str(e))
            response["database"] = f"error: {str(e)[:50]}"
    return response


if __name__ == "__main__":
    import uvicorn
    port = int(os.getenv("PORT", 8000))
    uvicorn.run(app, host="0.0.0.0", port=port)
