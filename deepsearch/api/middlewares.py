from aiohttp import web
from loguru import logger
from ..core.errors import DeepSearchError, UnauthorizedError
from ..core.services.user_service import get_user_by_token
from .app_keys import db_key, user_key

PUBLIC_PATHS = ("/health",)


@web.middleware
async def error_middleware(request: web.Request, handler):
    try:
        return await handler(request)
    except DeepSearchError as e:
        if e.status >= 500:
            logger.error(f"{request.method} {request.path}: {e.message}")
        else:
            logger.info(f"{request.method} {request.path} -> {e.status}: {e.message}")
        return web.Response(status=e.status, text=e.message)
    except web.HTTPException:
        raise
    except Exception:
        logger.exception(f"Unhandled error in {request.method} {request.path}")
        return web.Response(status=500, text="Internal Server Error")


@web.middleware
async def auth_middleware(request: web.Request, handler):
    """Пускает в /api/* только с Authorization: Bearer <token>, кладёт пользователя в request[user_key]."""
    if request.path in PUBLIC_PATHS or not request.path.startswith("/api/"):
        return await handler(request)

    scheme, _, token = request.headers.get("Authorization", "").partition(" ")
    if scheme.lower() != "bearer" or not token.strip():
        logger.warning(f"Missing bearer token for {request.path}")
        raise UnauthorizedError()

    user = await get_user_by_token(request.app[db_key], token.strip())
    if user is None:
        logger.warning(f"Invalid token for {request.path}")
        raise UnauthorizedError()

    request[user_key] = user
    return await handler(request)
