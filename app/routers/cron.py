import logging

from fastapi import APIRouter, Depends
from sqlalchemy.orm import Session

from app.database import get_db
from app.routers.deps import require_cron_secret
from app.schemas.leave import EscalationRunSummary
from app.services.escalation_service import EscalationService

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/cron", tags=["Cron"], dependencies=[Depends(require_cron_secret)])


@router.post("/escalation", response_model=EscalationRunSummary)
def run_escalation(db: Session = Depends(get_db)):
    """Triggered by the external scheduler; safe to call repeatedly."""
    logger.info("Escalation run requested")
    return EscalationService(db, "system").run()
