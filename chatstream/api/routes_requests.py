from fastapi import APIRouter, HTTPException
from fastapi.responses import StreamingResponse

from chatstream.schemas.chat import RelayJobCreateRequest, RelayJobResponse
from chatstream.services.request_relay import RelayJob, relay

router = APIRouter(prefix="/requests", tags=["requests"])


def _to_response(job: RelayJob) -> RelayJobResponse:
    return RelayJobResponse(
        request_id=job.request_id,
        status=job.status,
        event_count=len(job.events),
        created_at=job.created_at,
    )


@router.post("", response_model=RelayJobResponse)
def create_request(payload: RelayJobCreateRequest) -> RelayJobResponse:
    job = relay.register(
        payload.events,
        request_id=payload.request_id,
        interval=payload.interval_ms / 1000.0,
    )
    return _to_response(job)


@router.get("/{request_id}", response_model=RelayJobResponse)
def get_request(request_id: str) -> RelayJobResponse:
    job = relay.get(request_id)
    if job is None:
        raise HTTPException(status_code=404, detail="request_not_found")
    return _to_response(job)


@router.get("/{request_id}/events")
def stream_request_events(request_id: str) -> StreamingResponse:
    """Progress events of one request as server-sent events."""
    if relay.get(request_id) is None:
        raise HTTPException(status_code=404, detail="request_not_found")
    return StreamingResponse(
        relay.stream(request_id),
        media_type="text/event-stream",
        headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
    )


@router.post("/{request_id}/cancel")
def cancel_request(request_id: str) -> dict[str, bool]:
    if not relay.cancel(request_id):
        raise HTTPException(status_code=404, detail="request_not_found")
    return {"success": True}
