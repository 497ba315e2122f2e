from typing import Optional
from pydantic import BaseModel


class RequestInfo(BaseModel):
    method: str
    path: str
    app_id: int
    client_host: Optional[str] = None
    user_agent: Optional[str] = None


class HealthStatus(BaseModel):
    status: str
    version: str
    database: str


class ErrorResponse(BaseModel):
    detail: str
