from datetime import date
from typing import Optional

from fastapi import APIRouter, Depends, Request

from pulsetime.auth import Capability, Identity, current_identity
from pulsetime.models import ApiResponse, Period
from pulsetime.services.container import Services, get_services
from pulsetime.utils.http import request_id_of

router = APIRouter(prefix="/analytics", tags=["analytics"])


@router.get("")
async def get_analytics(
    request: Request,
    period: Optional[Period] = None,
    start_date: Optional[date] = None,
    end_date: Optional[date] = None,
    project_id: Optional[str] = None,
    compare: bool = False,
    identity: Identity = Depends(current_identity),
    services: Services = Depends(get_services),
):
    """
    Totals, per-project breakdown, daily/hourly/weekday distributions,
    earnings and focus for a period (default: this week) or a date range.
    """
    identity.require(Capability.VIEW_ANALYTICS)
    report = await services.analytics.report(
        identity.user_id,
        period=period,
        start_date=start_date,
        end_date=end_date,
        project_id=project_id,
        compare=compare,
    )
    return ApiResponse.success(data=report.model_dump(mode="json"), request_id=request_id_of(request))
