import json
from contextlib import aclosing
from aiohttp import web
from loguru import logger
from pydantic import ValidationError
from ..core.errors import BadRequestError, NotFoundError
from ..core.models.chat import ChatRequest
from ..core.services.chat_request_service import begin_chat_request, save_finished_chat
from ..core.services.chat_service import get_chat, get_chats
from ..core.tracing import trace
from .app_keys import db_key, deep_search_key, redis_key, settings_key, user_key

STREAM_ERROR = "Oops, an error occurred!"

routes = web.RouteTableDef()


async def write_event(response: web.StreamResponse, payload: dict):
    line = json.dumps(payload, ensure_ascii=False, default=str) + "\n"
    await response.write(line.encode("utf-8"))


@routes.get("/health")
async def health(request: web.Request):
    try:
        await request.app[db_key].fetchval("SELECT 1")
        await request.app[redis_key].ping()
    except Exception as e:
        logger.error(f"Health check failed: {e}")
        return web.json_response({"status": "unavailable"}, status=503)
    return web.json_response({"status": "ok"})


@routes.post("/api/chat")
async def chat(request: web.Request):
    user = request[user_key]
    try:
        body = ChatRequest.model_validate(await request.json())
    except (ValueError, ValidationError) as e:
        raise BadRequestError(f"Invalid request body: {e}")

    db = request.app[db_key]
    settings = request.app[settings_key]
    deep_search = request.app[deep_search_key]

    with trace("chat", user_id=user.id, chat_id=body.chat_id):
        title = await begin_chat_request(
            db, user, body.chat_id, body.messages,
            limit=settings.DAILY_REQUEST_LIMIT, tz=settings.TIMEZONE,
        )

        async def on_finish(finish):
            await save_finished_chat(db, user.id, body.chat_id, title, body.messages, finish.response_messages)

        response = web.StreamResponse(
            headers={"Content-Type": "application/x-ndjson; charset=utf-8", "Cache-Control": "no-cache"}
        )
        await response.prepare(request)

        if body.is_new_chat:
            await write_event(response, {"type": "data", "data": {"type": "NEW_CHAT_CREATED", "chatId": body.chat_id}})

        try:
            async with aclosing(deep_search.stream(body.messages, on_finish=on_finish)) as events:
                async for event in events:
                    await write_event(response, event.model_dump(exclude={"response_messages"}))
        except ConnectionResetError:
            # клиент ушёл: частичный результат выбрасываем, чат не дописываем
            logger.info(f"Client disconnected from chat {body.chat_id}")
            return response
        except Exception:
            logger.exception(f"Stream failed for chat {body.chat_id}")
            await write_event(response, {"type": "error", "error": STREAM_ERROR})

        await response.write_eof()
        return response


@routes.get("/api/chats")
async def list_chats(request: web.Request):
    chats = await get_chats(request.app[db_key], request[user_key].id)
    return web.json_response([chat.model_dump(mode="json") for chat in chats])


@routes.get("/api/chats/{chat_id}")
async def read_chat(request: web.Request):
    chat = await get_chat(request.app[db_key], request.match_info["chat_id"], request[user_key].id)
    if chat is None:
        raise NotFoundError("Chat not found")
    return web.json_response(chat.model_dump(mode="json", exclude_none=True))
