from __future__ import annotations
import json
import time
import uuid

from fastapi import APIRouter, Depends, HTTPException, Request, Response, status

from app.api.schemas import AcceptedResponse, EnqueueResponse, EventRecord, HealthResponse, StoreSnapshot
from app.controller.runtime_api import InvocationFailure, InvocationSuccess, RuntimeApi


RUNTIME_PREFIX = "/2018-06-01/runtime"

HDR_REQUEST_ID = "Lambda-Runtime-Aws-Request-Id"
HDR_DEADLINE_MS = "Lambda-Runtime-Deadline-Ms"
HDR_FUNCTION_ARN = "Lambda-Runtime-Invoked-Function-Arn"
HDR_TRACE_ID = "Lambda-Runtime-Trace-Id"
HDR_ERROR_TYPE = "Lambda-Runtime-Function-Error-Type"

DEFAULT_ERROR_TYPE = "Unhandled"

runtime_router = APIRouter()
events_router = APIRouter()


def get_runtime(request: Request) -> RuntimeApi:
    return request.app.state.runtime


def _trace_id() -> str:
    return f"Root=1-{int(time.time()):08x}-{uuid.uuid4().hex[:24]};Parent={uuid.uuid4().hex[:16]};Sampled=0"


def _error_type(request: Request, body: str) -> str:
    hdr = request.headers.get(HDR_ERROR_TYPE)
    if hdr:
        return hdr
    try:
        parsed = json.loads(body)
    except ValueError:
        return DEFAULT_ERROR_TYPE
    if isinstance(parsed, dict) and isinstance(parsed.get("errorType"), str):
        return parsed["errorType"]
    return DEFAULT_ERROR_TYPE


# ----------- Runtime API (what the function's bootstrap talks to) -----------

@runtime_router.get("/invocation/next")
def next_invocation(runtime: RuntimeApi = Depends(get_runtime)):
    """Long-polls for the next invocation. Runs in the threadpool since it blocks."""
    ev = runtime.poll_next()
    if ev is None:
        return Response(status_code=status.HTTP_204_NO_CONTENT)
    deadline_ms = int((time.time() + runtime.cfg.function_timeout_s) * 1000)
    headers = {
        HDR_REQUEST_ID: ev.aws_request_id,
        HDR_DEADLINE_MS: str(deadline_ms),
        HDR_FUNCTION_ARN: ev.function_arn,
        HDR_TRACE_ID: _trace_id(),
    }
    return Response(content=ev.payload, media_type="application/json", headers=headers)


@runtime_router.post("/invocation/{request_id}/response", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
async def invocation_response(request_id: str, request: Request, runtime: RuntimeApi = Depends(get_runtime)):
    body = (await request.body()).decode("utf-8", errors="replace")
    runtime.post_result(request_id, InvocationSuccess(body))
    return AcceptedResponse()


@runtime_router.post("/invocation/{request_id}/error", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
async def invocation_error(request_id: str, request: Request, runtime: RuntimeApi = Depends(get_runtime)):
    body = (await request.body()).decode("utf-8", errors="replace")
    runtime.post_result(request_id, InvocationFailure(_error_type(request, body), body))
    return AcceptedResponse()


@runtime_router.post("/init/error", status_code=status.HTTP_202_ACCEPTED, response_model=AcceptedResponse)
async def init_error(request: Request, runtime: RuntimeApi = Depends(get_runtime)):
    body = (await request.body()).decode("utf-8", errors="replace")
    runtime.report_init_error(_error_type(request, body), body)
    return AcceptedResponse()


# ----------- Test driver / inspection -----------

@events_router.post("/test-event", status_code=status.HTTP_201_CREATED, response_model=EnqueueResponse)
async def queue_test_event(request: Request, runtime: RuntimeApi = Depends(get_runtime)):
    body = (await request.body()).decode("utf-8", errors="replace")
    return EnqueueResponse(awsRequestId=runtime.enqueue(body))


@events_router.get("/events", response_model=StoreSnapshot)
def list_events(runtime: RuntimeApi = Depends(get_runtime)):
    return runtime.snapshot()


@events_router.get("/events/{request_id}", response_model=EventRecord)
def get_event(request_id: str, runtime: RuntimeApi = Depends(get_runtime)):
    rec = runtime.store.get_record(request_id)
    if rec is None:
        raise HTTPException(status_code=404, detail=f"Event {request_id} not found")
    return rec


@events_router.delete("/events/pending", status_code=status.HTTP_204_NO_CONTENT)
def clear_pending(runtime: RuntimeApi = Depends(get_runtime)):
    runtime.clear_pending()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@events_router.delete("/events/completed", status_code=status.HTTP_204_NO_CONTENT)
def clear_completed(runtime: RuntimeApi = Depends(get_runtime)):
    runtime.clear_completed()
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@events_router.delete("/events/{request_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_event(request_id: str, runtime: RuntimeApi = Depends(get_runtime)):
    runtime.delete_event(request_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


health_router = APIRouter()


@health_router.get("/health", response_model=HealthResponse)
def health(runtime: RuntimeApi = Depends(get_runtime)):
    stats = runtime.store.stats()
    return HealthResponse(pending=stats["pending"], active=stats["active"], completed=stats["completed"])
