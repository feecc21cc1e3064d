import logging

from fastapi import APIRouter, Depends, HTTPException

from backend.deps import get_marking_service
from backend.security import require_admin, require_session
from backend.services.marking import MarkingService
from database.store import AttendanceRecord, RecordStoreError

logger = logging.getLogger(__name__)

router = APIRouter()


def _read_roster(service: MarkingService) -> list[AttendanceRecord]:
    try:
        return service.get_students()
    except RecordStoreError:
        logger.exception("Roster read failed")
        raise HTTPException(status_code=503, detail="Roster is temporarily unavailable.")


@router.get("/students")
def students(
    _admin: dict = Depends(require_admin),
    service: MarkingService = Depends(get_marking_service),
):
    return [record.to_dict() for record in _read_roster(service)]


@router.get("/students/codes")
def student_codes(
    _session: dict = Depends(require_session),
    service: MarkingService = Depends(get_marking_service),
):
    # Code and name only, for the offline lookup cache on scanning devices.
    return [{"qrId": r.qr_id, "name": r.name} for r in _read_roster(service) if r.qr_id]
