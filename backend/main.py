from fastapi import FastAPI, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.middleware.gzip import GZipMiddleware
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException
from api.v1 import users
from core.config import settings
from core.errors import error_body
from db.mongodb import close_mongo, connect_mongo, get_mongo_db, init_mongo_indexes
from utils.logging_config import configure_logging, RequestContextMiddleware
from utils.media import init_media_host
from utils.responses import NO_STORE_HEADERS

# Configure logging with date-based files and TTL retention
logger = configure_logging("channel_accounts")

app = FastAPI(
    title=settings.APP_NAME,
    version=settings.VERSION,
    debug=settings.DEBUG
)

@app.exception_handler(StarletteHTTPException)
async def http_exception_handler(request: Request, exc: StarletteHTTPException):
    message = getattr(exc, "message", None) or str(exc.detail)
    errors = getattr(exc, "errors", [])
    headers = dict(NO_STORE_HEADERS)
    headers.update(exc.headers or {})
    return JSONResponse(status_code=exc.status_code, content=error_body(exc.status_code, message, errors), headers=headers)

@app.exception_handler(RequestValidationError)
async def validation_exception_handler(request: Request, exc: RequestValidationError):
    errors = [{"loc": list(e.get("loc", [])), "msg": e.get("msg", "")} for e in exc.errors()]
    return JSONResponse(status_code=400, content=error_body(400, "Invalid request payload", errors), headers=NO_STORE_HEADERS)

# Global exception handler to ensure 500s for unexpected errors
@app.exception_handler(Exception)
async def unhandled_exception_handler(request: Request, exc: Exception):
    logger.error(f"Unhandled error at {request.url.path}: {exc}")
    return JSONResponse(status_code=500, content=error_body(500, "Internal server error"))

app.add_middleware(GZipMiddleware, minimum_size=500)

# Add logging context middleware to capture user_id and API path
app.add_middleware(RequestContextMiddleware)

# Credentials are required for the session cookies
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.ALLOWED_ORIGINS,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)

app.include_router(users.router, tags=["Users"])

@app.on_event("startup")
async def startup_clients():
    """Create the Mongo client, ensure indexes and configure the media host"""
    db = connect_mongo()
    if await init_mongo_indexes(db):
        logger.info("Mongo indexes ensured")
    init_media_host()
    logger.info("Application startup complete")

@app.on_event("shutdown")
async def shutdown_clients():
    close_mongo()
    logger.info("Application shutdown complete")

@app.get("/")
async def root():
    return {"message": settings.APP_NAME, "version": settings.VERSION}

@app.get("/health")
async def health_check():
    try:
        await get_mongo_db().command({"ping": 1})
        return {"status": "healthy", "database": "mongo_connected"}
    except Exception as e:
        logger.warning(f"Health Mongo check failed: {e}")
        return {"status": "degraded", "database": "mongo_unavailable"}
