import asyncio
import json
from datetime import datetime, timezone
from enum import Enum
from typing import AsyncIterator, Awaitable, Callable, Literal, Optional, Union
from loguru import logger
from pydantic import BaseModel, Field, ValidationError
from ..errors import DeepSearchError
from ..models.chat import ChatMessage, ToolCall

MAX_STEPS = 10

SYSTEM_PROMPT = """You are a helpful AI assistant with the ability to search the web for real-time information and scrape web pages for detailed content.

The current date and time is: {now} GMT

When users ask for up-to-date or current information:
- ALWAYS mention the current date in your responses
- ALWAYS include the date/time when the information was published in your responses
- If information is more than 6 months old, explicitly warn the user
- For time-sensitive queries (weather, news, sports), emphasize the timestamp of the data

When answering questions:
- ALWAYS search the web first to get the most up-to-date information using the searchWeb tool
- You MUST ALWAYS use the scrapePages tool after searching to get detailed content from the most relevant pages
- For EVERY search query, select 4-6 diverse URLs to scrape: official documentation or primary sources, recent articles from different sites, community discussions, expert analyses, news when relevant
- NEVER rely only on search result snippets
- NEVER show raw URLs in your responses. ALWAYS use markdown links with descriptive text, e.g. [The New York Times](https://example.com)
- Synthesize information from multiple sources and highlight where they agree or disagree
- If a tool returns an error for some pages, work with the pages that succeeded and say what could not be retrieved
- If you're unsure about something, acknowledge the uncertainty and explain what you do know
- Be concise but thorough, and format your responses in markdown"""


def build_system_prompt(now: datetime | None = None) -> str:
    now = now or datetime.now(timezone.utc)
    return SYSTEM_PROMPT.format(now=now.strftime("%d/%m/%Y, %H:%M:%S"))


class SearchWebParams(BaseModel):
    query: str = Field(description="The query to search the web for")


class ScrapePagesParams(BaseModel):
    urls: list[str] = Field(max_length=5, description="Array of URLs to scrape (max 5)")


TOOLS = [
    {
        "type": "function",
        "function": {
            "name": "searchWeb",
            "description": "Search the web. Returns titles, links, snippets and publication dates.",
            "parameters": SearchWebParams.model_json_schema(),
        },
    },
    {
        "type": "function",
        "function": {
            "name": "scrapePages",
            "description": "Fetch pages and return their main text content as markdown.",
            "parameters": ScrapePagesParams.model_json_schema(),
        },
    },
]


class LoopState(str, Enum):
    AWAITING_MODEL = "awaiting_model"
    EXECUTING_TOOLS = "executing_tools"
    TERMINAL = "terminal"


class TextDelta(BaseModel):
    type: Literal["text"] = "text"
    text: str


class ToolCallEvent(BaseModel):
    type: Literal["tool_call"] = "tool_call"
    id: str
    name: str
    arguments: str


class ToolResultEvent(BaseModel):
    type: Literal["tool_result"] = "tool_result"
    id: str
    name: str
    result: str


class FinishEvent(BaseModel):
    type: Literal["finish"] = "finish"
    text: str
    steps: int
    finish_reason: Literal["stop", "max_steps"]
    response_messages: list[ChatMessage]


StreamEvent = Union[TextDelta, ToolCallEvent, ToolResultEvent, FinishEvent]
OnFinish = Callable[[FinishEvent], Awaitable[None]]


class _ModelTurn:
    """Собирает текст и вызовы инструментов из потоковых чанков одного шага."""

    def __init__(self, step: int):
        self.step = step
        self.text_parts: list[str] = []
        self.calls: dict[int, dict] = {}

    @property
    def text(self) -> str:
        return "".join(self.text_parts)

    @property
    def tool_calls(self) -> list[ToolCall]:
        return [
            ToolCall(
                id=slot["id"] or f"call_{self.step}_{index}",
                name=slot["name"],
                arguments=slot["arguments"],
            )
            for index, slot in sorted(self.calls.items())
        ]

    def add_tool_fragment(self, fragment):
        slot = self.calls.setdefault(fragment.index, {"id": "", "name": "", "arguments": ""})
        if fragment.id:
            slot["id"] = fragment.id
        function = fragment.function
        if function is not None:
            if function.name:
                slot["name"] += function.name
            if function.arguments:
                slot["arguments"] += function.arguments


class DeepSearch:
    """
    Цикл "модель -> инструменты -> модель".

    Состояния: awaiting_model (стрим ответа модели), executing_tools (параллельный
    запуск всех вызовов шага), terminal. Каждый вызов модели = один шаг; после
    max_steps шагов цикл завершается принудительно с тем, что уже есть.
    Ошибка инструмента возвращается модели текстом "Error: ..." и не прерывает цикл.
    """

    def __init__(
        self,
        client,
        search,
        scraper,
        cache=None,
        model: str = "gpt-4o",
        max_steps: int = MAX_STEPS,
        search_results: int = 10,
    ):
        self.client = client
        self.search = search
        self.scraper = scraper
        self.model = model
        self.max_steps = max_steps
        self.search_results = search_results

        if cache is not None:
            self.search_web = cache.wrap("searchWeb", self._search_web)
            self.scrape_pages = cache.wrap("scrapePages", self._scrape_pages)
        else:
            self.search_web = self._search_web
            self.scrape_pages = self._scrape_pages

    async def _search_web(self, query: str) -> list[dict]:
        response = await self.search.search(query, num=self.search_results)
        return [
            {"title": r.title, "link": r.link, "snippet": r.snippet, "date": r.date}
            for r in response.organic
        ]

    async def _scrape_pages(self, urls: list[str]) -> dict:
        crawled = await self.scraper.bulk_crawl_websites(urls)
        payload = {
            "results": [
                {
                    "url": entry.url,
                    "content": entry.result.data if entry.result.success else f"Error: {entry.result.error}",
                    "error": not entry.result.success,
                }
                for entry in crawled.results
            ]
        }
        if not crawled.success:
            payload["error"] = crawled.error
        return payload

    async def execute_tool(self, call: ToolCall) -> str:
        try:
            arguments = json.loads(call.arguments or "{}")
            if call.name == "searchWeb":
                params = SearchWebParams.model_validate(arguments)
                result = await self.search_web(params.query)
            elif call.name == "scrapePages":
                params = ScrapePagesParams.model_validate(arguments)
                result = await self.scrape_pages(params.urls)
            else:
                return f"Error: Unknown tool '{call.name}'"
        except (json.JSONDecodeError, ValidationError) as e:
            logger.warning(f"Invalid arguments for {call.name}: {call.arguments!r}")
            return f"Error: Invalid arguments for {call.name}: {e}"
        except DeepSearchError as e:
            logger.warning(f"Tool {call.name} failed: {e.message}")
            return f"Error: {e.message}"
        except Exception as e:
            logger.exception(f"Tool {call.name} crashed")
            return f"Error: {e}"
        return json.dumps(result, ensure_ascii=False)

    async def _stream_model(self, transcript: list[dict], turn: _ModelTurn) -> AsyncIterator[TextDelta]:
        stream = await self.client.chat.completions.create(
            model=self.model,
            messages=transcript,
            tools=TOOLS,
            stream=True,
        )
        async for chunk in stream:
            if not chunk.choices:
                continue
            delta = chunk.choices[0].delta
            if delta.content:
                turn.text_parts.append(delta.content)
                yield TextDelta(text=delta.content)
            for fragment in delta.tool_calls or []:
                turn.add_tool_fragment(fragment)

    async def stream(self, messages: list[ChatMessage], on_finish: Optional[OnFinish] = None) -> AsyncIterator[StreamEvent]:
        """
        Стримит события цикла. on_finish вызывается только после штатного завершения;
        при отмене или ошибке ничего не сохраняется.
        """
        transcript = [{"role": "system", "content": build_system_prompt()}]
        transcript.extend(message.to_openai() for message in messages)
        response_messages: list[ChatMessage] = []

        state = LoopState.AWAITING_MODEL
        step = 0
        pending: list[ToolCall] = []
        finish_reason = "stop"

        while state is not LoopState.TERMINAL:
            if state is LoopState.AWAITING_MODEL:
                step += 1
                turn = _ModelTurn(step)
                async for delta in self._stream_model(transcript, turn):
                    yield delta

                pending = turn.tool_calls
                assistant = ChatMessage(role="assistant", content=turn.text or None, tool_calls=pending or None)
                transcript.append(assistant.to_openai())
                response_messages.append(assistant)
                state = LoopState.EXECUTING_TOOLS if pending else LoopState.TERMINAL

            elif state is LoopState.EXECUTING_TOOLS:
                logger.debug(f"Step {step}: executing {[call.name for call in pending]}")
                for call in pending:
                    yield ToolCallEvent(id=call.id, name=call.name, arguments=call.arguments)

                outputs = await asyncio.gather(*(self.execute_tool(call) for call in pending))
                for call, output in zip(pending, outputs):
                    tool_message = ChatMessage(role="tool", tool_call_id=call.id, content=output)
                    transcript.append(tool_message.to_openai())
                    response_messages.append(tool_message)
                    yield ToolResultEvent(id=call.id, name=call.name, result=output)

                if step >= self.max_steps:
                    logger.info(f"Step limit {self.max_steps} reached, stopping")
                    finish_reason = "max_steps"
                    state = LoopState.TERMINAL
                else:
                    state = LoopState.AWAITING_MODEL

        text = next(
            (m.content for m in reversed(response_messages) if m.role == "assistant" and m.content),
            "",
        )
        finish = FinishEvent(
            text=text,
            steps=step,
            finish_reason=finish_reason,
            response_messages=response_messages,
        )
        if on_finish is not None:
            await on_finish(finish)
        yield finish

    async def ask(self, messages: list[ChatMessage]) -> str:
        """Прогоняет цикл без сохранения и возвращает итоговый текст."""
        text = ""
        async for event in self.stream(messages):
            if isinstance(event, FinishEvent):
                text = event.text
        return text
