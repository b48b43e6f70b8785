"""NFC-e queue endpoint."""
from fastapi import APIRouter, Request

from core.nfe import NfeProcessor
from ._deps import get_logger, limiter

router = APIRouter()
logger = get_logger(__name__)


@router.post("/nfe/process")
@limiter.limit("10/minute")
async def process_nfe_queue(request: Request):
    """
    Emit pending invoices now instead of waiting for the scheduled run.

    Missing or disabled NFe settings answer 400.
    """
    return await NfeProcessor().process_pending()
