from pydantic import BaseModel
from typing import Optional


class CrawlResult(BaseModel):
    success: bool
    data: Optional[str] = None
    error: Optional[str] = None


class CrawlEntry(BaseModel):
    url: str
    result: CrawlResult


class BulkCrawlResponse(BaseModel):
    success: bool
    results: list[CrawlEntry]
    error: Optional[str] = None
