import logging

from fastapi import APIRouter, Depends, Query
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from backend.deps import get_marking_service
from backend.security import require_session
from backend.services.marking import MarkingService

logger = logging.getLogger(__name__)

router = APIRouter()


class ScanRequest(BaseModel):
    code: str | None = None
    # Older scanning clients send the QR payload under this name.
    qrId: str | None = None


@router.post("/scan-mark")
def scan_mark(
    payload: ScanRequest,
    session: dict = Depends(require_session),
    service: MarkingService = Depends(get_marking_service),
):
    code = (payload.code or payload.qrId or "").strip()
    if not code:
        return JSONResponse(status_code=400, content={"success": False, "message": "QR code is required"})

    operator_id = session.get("sub") or "unknown"
    operator_name = session.get("name") or "Unknown Volunteer"

    try:
        result = service.mark_present(code, operator_id, operator_name)
    except Exception:
        logger.exception("Unexpected failure while marking %s", code)
        return JSONResponse(status_code=500, content={"error": "Internal server error"})

    if result.success:
        return result.to_dict()
    return JSONResponse(status_code=400, content=result.to_dict())


@router.get("/stats")
def stats(
    _session: dict = Depends(require_session),
    service: MarkingService = Depends(get_marking_service),
):
    return service.get_stats()


@router.get("/logs")
def logs(
    limit: int = Query(default=10, ge=1, le=100),
    _session: dict = Depends(require_session),
    service: MarkingService = Depends(get_marking_service),
):
    return [entry.to_dict() for entry in service.get_recent_logs(limit)]
