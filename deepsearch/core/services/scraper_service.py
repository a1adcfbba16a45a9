import asyncio
from typing import Optional
from urllib.parse import urlsplit
from urllib.robotparser import RobotFileParser
import httpx
import trafilatura
from bs4 import BeautifulSoup
from loguru import logger
from ..errors import ScrapeError
from ..models.scrape import BulkCrawlResponse, CrawlEntry, CrawlResult

DEFAULT_USER_AGENT = "DeepSearchBot/1.0"
DEFAULT_TIMEOUT = 10.0
MAX_URLS = 5

HTML_TYPES = ("text/html", "application/xhtml+xml")
PLAIN_TYPES = ("application/json", "application/xml")


def _origin(url: str) -> str:
    parts = urlsplit(url)
    return f"{parts.scheme}://{parts.netloc}"


def extract_text(html: str) -> str:
    """Основной текст страницы в markdown; если trafilatura ничего не нашла, видимый текст."""
    content = trafilatura.extract(
        html,
        output_format="markdown",
        include_comments=False,
        include_tables=True,
        include_images=False,
    )
    if content:
        return content.strip()

    soup = BeautifulSoup(html, "html.parser")
    for tag in soup(["script", "style", "noscript", "template"]):
        tag.decompose()
    return soup.get_text("\n", strip=True)


class Scraper:
    def __init__(
        self,
        client: httpx.AsyncClient,
        timeout: float = DEFAULT_TIMEOUT,
        max_urls: int = MAX_URLS,
        respect_robots: bool = True,
        user_agent: str = DEFAULT_USER_AGENT,
    ):
        self.client = client
        self.timeout = timeout
        self.max_urls = max_urls
        self.respect_robots = respect_robots
        self.user_agent = user_agent

    @property
    def headers(self) -> dict:
        return {"User-Agent": self.user_agent}

    async def _load_robots(self, origin: str) -> Optional[RobotFileParser]:
        try:
            resp = await asyncio.wait_for(
                self.client.get(f"{origin}/robots.txt", headers=self.headers, follow_redirects=True),
                timeout=self.timeout,
            )
        except (httpx.HTTPError, httpx.InvalidURL, asyncio.TimeoutError) as e:
            # robots.txt недоступен: считаем, что можно
            logger.debug(f"Could not load robots.txt for {origin}: {e!r}")
            return None
        if resp.status_code >= 400:
            return None
        parser = RobotFileParser()
        parser.parse(resp.text.splitlines())
        return parser

    async def load_robots(self, urls: list[str]) -> dict[str, Optional[RobotFileParser]]:
        """robots.txt по одному разу на каждый хост из списка."""
        if not self.respect_robots:
            return {}
        origins = list(dict.fromkeys(_origin(url) for url in urls))
        parsers = await asyncio.gather(*(self._load_robots(origin) for origin in origins))
        return dict(zip(origins, parsers))

    def is_allowed(self, url: str, robots: dict[str, Optional[RobotFileParser]]) -> bool:
        parser = robots.get(_origin(url))
        return parser is None or parser.can_fetch(self.user_agent, url)

    async def _fetch(self, url: str, robots: dict) -> str:
        if not self.is_allowed(url, robots):
            raise ScrapeError("Crawling disallowed by robots.txt")

        resp = await self.client.get(url, headers=self.headers, follow_redirects=True)
        if resp.status_code >= 400:
            raise ScrapeError(f"HTTP {resp.status_code} {resp.reason_phrase}".strip())

        content_type = resp.headers.get("content-type", "").split(";")[0].strip().lower()
        if not content_type or content_type in HTML_TYPES:
            text = await asyncio.to_thread(extract_text, resp.text)
        elif content_type.startswith("text/") or content_type in PLAIN_TYPES:
            text = resp.text.strip()
        else:
            raise ScrapeError(f"Unsupported content type: {content_type}")

        if not text:
            raise ScrapeError("No content extracted")
        return text

    async def crawl_website(self, url: str, robots: Optional[dict] = None) -> CrawlResult:
        if robots is None:
            robots = await self.load_robots([url])
        try:
            data = await asyncio.wait_for(self._fetch(url, robots), timeout=self.timeout)
        except asyncio.TimeoutError:
            error = f"Timed out after {self.timeout:g}s"
        except ScrapeError as e:
            error = e.message
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            error = f"{type(e).__name__}: {e}" if str(e) else type(e).__name__
        except Exception as e:
            logger.exception(f"Unexpected error while crawling {url}")
            error = str(e) or type(e).__name__
        else:
            return CrawlResult(success=True, data=data)

        logger.info(f"Failed to crawl {url}: {error}")
        return CrawlResult(success=False, error=error)

    async def bulk_crawl_websites(self, urls: list[str]) -> BulkCrawlResponse:
        """
        Параллельно скачивает все URL. Ошибка одного URL не мешает остальным.
        Порядок и длина результата совпадают со входом, дубликаты скачиваются один раз.
        robots.txt каждого хоста запрашивается один раз на весь пакет.
        """
        if len(urls) > self.max_urls:
            raise ValueError(f"Too many URLs: {len(urls)} (max {self.max_urls})")

        unique = list(dict.fromkeys(urls))
        robots = await self.load_robots(unique)
        crawled = await asyncio.gather(*(self.crawl_website(url, robots) for url in unique))
        by_url = dict(zip(unique, crawled))
        results = [CrawlEntry(url=url, result=by_url[url]) for url in urls]

        failed = [entry for entry in results if not entry.result.success]
        if failed:
            error = "Failed to crawl some websites:\n" + "\n".join(
                f"{entry.url}: {entry.result.error}" for entry in failed
            )
            return BulkCrawlResponse(success=False, results=results, error=error)

        return BulkCrawlResponse(success=True, results=results)
