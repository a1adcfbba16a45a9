from aiohttp import web
from ..core.config import Settings
from ..core.db.postgres import Database
from ..core.models.user import User
from ..core.services.deep_search_service import DeepSearch

settings_key = web.AppKey("settings", Settings)
db_key = web.AppKey("db", Database)
redis_key = web.AppKey("redis", object)
deep_search_key = web.AppKey("deep_search", DeepSearch)

user_key = web.RequestKey("user", User)
