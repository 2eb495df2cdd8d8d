from __future__ import annotations

from pydantic import BaseModel


class DigestIdea(BaseModel):
    id: str
    name: str
    pitch: str
    score: float
    category: str


class DigestResponse(BaseModel):
    success: bool = True
    message: str = ""
    emails_sent: int = 0
    ideas_included: int = 0
