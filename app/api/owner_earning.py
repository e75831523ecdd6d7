from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends
from pydantic import BaseModel

from app.api.bearer import bearer_owner
from app.src.db import sessionMaker
from app.src import exceptions, validators, ledger
from app.src.functions import makeExceptionResponses
from app.src.urls import URL_EARNING

route_owner = APIRouter()


## Output Schema
class OwnerEarningSchema(BaseModel):
    id: int
    owner_id: int
    bus_id: int
    booking_id: int
    route: Optional[str]
    travel_date: Optional[str]
    seat_count: int
    gross_fare: float
    percentage: int
    amount: float
    created_on: datetime


class EarningsSchema(BaseModel):
    total: float
    earnings: List[OwnerEarningSchema]


## API endpoints [Owner]
@route_owner.get(
    URL_EARNING,
    tags=["Earning"],
    response_model=EarningsSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches the earnings of the calling owner, newest first, with their total.
    Earnings of cancelled bookings are included, they are never recalculated.
    """,
)
async def fetch_own_earnings(bearer=Depends(bearer_owner)):
    try:
        session = sessionMaker()
        token = validators.ownerToken(bearer.credentials, session)

        return {
            "total": ledger.totalEarnings(session, token.account_id),
            "earnings": ledger.ownerEarnings(session, token.account_id),
        }
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
