from __future__ import annotations
from typing import List, Optional

from pydantic import BaseModel

class EventRecord(BaseModel):
    """Serialized view of one invocation (mirrors Event.to_record)."""
    awsRequestId: str
    payload: str
    status: str
    response: Optional[str] = None
    errorType: Optional[str] = None
    errorBody: Optional[str] = None
    lastUpdated: str
    functionArn: str
    abandoned: bool = False

class StoreSnapshot(BaseModel):
    pending: List[EventRecord]
    active: Optional[EventRecord] = None
    completed: List[EventRecord]

class EnqueueResponse(BaseModel):
    awsRequestId: str

class AcceptedResponse(BaseModel):
    status: str = "OK"

class HealthResponse(BaseModel):
    status: str = "ok"
    pending: int
    active: int
    completed: int
