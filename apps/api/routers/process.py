import logging
from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Response
from fastapi.responses import JSONResponse, PlainTextResponse

from workers.generator.errors import StoreAccessError
from workers.generator.worker import Outcome, Worker

from ..dependencies import get_worker
from ..schemas.process import ProcessRequest
from ..security.auth import require_worker

LOGGER = logging.getLogger("aijobs.api")

router = APIRouter()


@router.get("/", response_class=PlainTextResponse)
def health():
    return "OK"


@router.post("/process", dependencies=[Depends(require_worker)])
def process(
    payload: Optional[ProcessRequest] = Body(default=None),
    worker: Worker = Depends(get_worker),
):
    """Empty body: claim the next pending job. JSON body: run the delivered job."""
    if payload is not None and not worker.dispatcher.supports(payload.action):
        raise HTTPException(status_code=400, detail=f"Unsupported action: {payload.action}")
    try:
        if payload is None:
            run = worker.run_next()
        else:
            run = worker.run_pushed(
                payload.job_id,
                payload.action,
                payload.payload,
                user_id=payload.user_id,
                cost=payload.cost,
            )
    except StoreAccessError:
        LOGGER.exception("job store unavailable")
        return JSONResponse({"status": "error"}, status_code=500)

    if run.outcome is Outcome.EMPTY:
        return Response(status_code=204)
    if run.outcome is Outcome.NOT_FOUND:
        raise HTTPException(status_code=404, detail="job not found")
    body = {"status": run.outcome.value, "job_id": run.job_id}
    if run.outcome is Outcome.SKIPPED:
        body["current"] = run.status.value if run.status else None
        return body
    if run.outcome is Outcome.FAILURE:
        body["job_status"] = run.status.value if run.status else None
        return JSONResponse(body, status_code=500)
    return body
