"""History delta routes: pull changes since a cursor, push record batches."""

import structlog
from fastapi import APIRouter, Depends, HTTPException, Query
from pydantic import ValidationError

from history.records import normalize_record
from web.deps import get_remote_store
from web.models import ClearResponse, EmotionRecordIn, PullResponse, PushRequest, PushResponse
from web.remote_store import RemoteHistoryStore

logger = structlog.get_logger()

router = APIRouter(prefix="/api/history", tags=["history"])


@router.get("", response_model=PullResponse)
async def pull_changes(
    since: str | None = None,
    limit: int = Query(500, ge=1, le=5000),
    store: RemoteHistoryStore = Depends(get_remote_store),
):
    try:
        records, next_cursor = store.changes_since(since, limit=limit)
    except ValueError as e:
        raise HTTPException(status_code=400, detail=str(e))
    return PullResponse(records=records, nextCursor=next_cursor)


@router.post("", response_model=PushResponse)
async def push_records(
    body: PushRequest,
    store: RemoteHistoryStore = Depends(get_remote_store),
):
    valid = []
    rejected = []
    for raw in body.records:
        try:
            EmotionRecordIn.model_validate(raw)
            valid.append(normalize_record(raw))
        except (ValidationError, ValueError) as e:
            record_id = raw.get("id")
            if isinstance(record_id, str) and record_id:
                rejected.append(record_id)
            logger.warning("history.push.rejected", id=record_id, error=str(e))

    accepted = store.upsert(valid)
    return PushResponse(acceptedIds=accepted, rejected=rejected)


@router.delete("", response_model=ClearResponse)
async def clear_history(store: RemoteHistoryStore = Depends(get_remote_store)):
    return ClearResponse(removed=store.clear())
