from __future__ import annotations

from fastapi import APIRouter, Depends

from painradar.core.dependencies import get_notifier, get_record_store
from painradar.core.security import require_cron_secret
from painradar.modules.ideas.store import RecordStore
from painradar.modules.notifications.base import Notifier
from painradar.modules.notifications.schemas import DigestResponse
from painradar.modules.notifications.service import send_digests

router = APIRouter(prefix="/notifications", tags=["notifications"])


@router.post(
    "/digest",
    response_model=DigestResponse,
    dependencies=[Depends(require_cron_secret)],
)
async def send_digest(
    records: RecordStore = Depends(get_record_store),
    notifier: Notifier = Depends(get_notifier),
) -> DigestResponse:
    """Email the top new ideas to every matching subscriber."""
    return await send_digests(records, notifier)
