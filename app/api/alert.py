from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, status, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin, bearer_driver
from app.src.db import sessionMaker, Alert
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.functions import makeExceptionResponses
from app.src.urls import URL_ALERT

route_admin = APIRouter()
route_driver = APIRouter()


## Output Schema
class AlertSchema(BaseModel):
    id: int
    driver_id: int
    message: str
    resolved: bool
    updated_on: Optional[datetime]
    created_on: datetime


## Input Forms
class CreateForm(BaseModel):
    message: str = Field(Form(min_length=1, max_length=2048))


class ResolveForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class QueryParams(BaseModel):
    resolved: bool | None = Field(Query(default=None))
    driver_id: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchAlert(session: Session, qParam: QueryParams) -> List[Alert]:
    query = session.query(Alert)
    if qParam.resolved is not None:
        query = query.filter(Alert.resolved == qParam.resolved)
    if qParam.driver_id is not None:
        query = query.filter(Alert.driver_id == qParam.driver_id)

    # Newest first
    query = query.order_by(Alert.created_on.desc(), Alert.id.desc())
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Driver]
@route_driver.post(
    URL_ALERT,
    tags=["Alert"],
    response_model=AlertSchema,
    status_code=status.HTTP_201_CREATED,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Raises an alert for the administrators.
    Logs the alert with the associated token.
    """,
)
async def create_alert(
    fParam: CreateForm = Depends(),
    bearer=Depends(bearer_driver),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        alert = Alert(driver_id=token.account_id, message=fParam.message)
        session.add(alert)
        session.commit()
        session.refresh(alert)

        alertData = jsonable_encoder(alert)
        logEvent(token, request_info, alertData)
        return alertData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


## API endpoints [Admin]
@route_admin.get(
    URL_ALERT,
    tags=["Alert"],
    response_model=List[AlertSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches driver alerts, newest first.
    Supports filtering by resolved state and driver.
    """,
)
async def fetch_alerts(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return searchAlert(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ALERT,
    tags=["Alert"],
    response_model=AlertSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Marks an alert as resolved.
    Resolving an already resolved alert changes nothing.
    Logs the resolution with the associated token.
    """,
)
async def resolve_alert(
    fParam: ResolveForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        alert = session.query(Alert).filter(Alert.id == fParam.id).first()
        if alert is None:
            raise exceptions.InvalidIdentifier()

        haveUpdates = not alert.resolved
        if haveUpdates:
            alert.resolved = True
            session.commit()
            session.refresh(alert)

        alertData = jsonable_encoder(alert)
        if haveUpdates:
            logEvent(token, request_info, alertData)
        return alertData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
