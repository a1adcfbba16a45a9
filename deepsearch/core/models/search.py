from pydantic import BaseModel
from typing import Optional


class OrganicResult(BaseModel):
    title: str
    link: str
    snippet: str = ""
    date: Optional[str] = None
    position: Optional[int] = None


class SerperResponse(BaseModel):
    organic: list[OrganicResult] = []
