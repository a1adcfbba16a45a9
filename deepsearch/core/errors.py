class DeepSearchError(Exception):
    """Базовая ошибка приложения. status используется HTTP-слоем."""

    status = 500
    default_message = "Internal Server Error"

    def __init__(self, message: str | None = None):
        self.message = message or self.default_message
        super().__init__(self.message)


class BadRequestError(DeepSearchError):
    status = 400
    default_message = "Bad Request"


class UnauthorizedError(DeepSearchError):
    status = 401
    default_message = "Unauthorized"


class ChatOwnershipError(DeepSearchError):
    status = 403
    default_message = "Unauthorized - Chat belongs to another user"


class NotFoundError(DeepSearchError):
    status = 404
    default_message = "Not Found"


class QuotaExceeded(DeepSearchError):
    status = 429
    default_message = "Too Many Requests - Daily limit exceeded"


# Ошибки инструментов модели: не доходят до клиента, а превращаются в текст результата
class ToolError(DeepSearchError):
    status = 502
    default_message = "Tool call failed"


class SearchError(ToolError):
    default_message = "Search request failed"


class ScrapeError(ToolError):
    default_message = "Scrape failed"
