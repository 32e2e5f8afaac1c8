from typing import Any
from bson import ObjectId
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse
from core.config import settings

NO_STORE_HEADERS = {
    "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
    "Pragma": "no-cache",
    "Expires": "0",
}

def to_json(data: Any) -> Any:
    return jsonable_encoder(data, by_alias=True, custom_encoder={ObjectId: str})

def no_store_json(data, status_code: int = 200):
    """Return JSONResponse with no-store caching headers."""
    return JSONResponse(content=data, status_code=status_code, headers=NO_STORE_HEADERS)

def api_response(data: Any = None, message: str = "Success", status_code: int = 200) -> JSONResponse:
    """Success envelope: statusCode, data, message, success."""
    return no_store_json({
        "statusCode": status_code,
        "data": to_json(data if data is not None else {}),
        "message": message,
        "success": status_code < 400,
    }, status_code=status_code)

def _cookie_options() -> dict:
    return {"httponly": True, "secure": settings.COOKIE_SECURE, "samesite": "lax", "path": "/"}

def set_session_cookies(response: JSONResponse, access_token: str, refresh_token: str) -> JSONResponse:
    options = _cookie_options()
    response.set_cookie(settings.ACCESS_COOKIE_NAME, access_token, max_age=settings.ACCESS_TOKEN_EXPIRE_MINUTES * 60, **options)
    response.set_cookie(settings.REFRESH_COOKIE_NAME, refresh_token, max_age=settings.REFRESH_TOKEN_EXPIRE_DAYS * 86400, **options)
    return response

def clear_session_cookies(response: JSONResponse) -> JSONResponse:
    options = _cookie_options()
    response.delete_cookie(settings.ACCESS_COOKIE_NAME, **options)
    response.delete_cookie(settings.REFRESH_COOKIE_NAME, **options)
    return response
