from datetime import datetime
from typing import List, Optional
from fastapi import APIRouter, Depends, Query, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_driver
from app.src.db import sessionMaker, DriverNotification
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.functions import makeExceptionResponses
from app.src.urls import (
    URL_NOTIFICATION,
    URL_NOTIFICATION_READ,
    URL_NOTIFICATION_READ_ALL,
    URL_NOTIFICATION_UNREAD_COUNT,
)

route_driver = APIRouter()


## Output Schema
class DriverNotificationSchema(BaseModel):
    id: int
    driver_id: int
    tour_id: Optional[int]
    type: str
    title: str
    message: str
    is_read: bool
    updated_on: Optional[datetime]
    created_on: datetime


class UnreadCountSchema(BaseModel):
    unread: int


class ReadAllSchema(BaseModel):
    updated: int


## Input Forms
class ReadForm(BaseModel):
    id: int = Field(Form())


## Query Parameters
class QueryParams(BaseModel):
    is_read: bool | None = Field(Query(default=None))
    tour_id: int | None = Field(Query(default=None))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchNotification(
    session: Session, driverId: int, qParam: QueryParams
) -> List[DriverNotification]:
    query = session.query(DriverNotification).filter(
        DriverNotification.driver_id == driverId
    )
    if qParam.is_read is not None:
        query = query.filter(DriverNotification.is_read == qParam.is_read)
    if qParam.tour_id is not None:
        query = query.filter(DriverNotification.tour_id == qParam.tour_id)

    # Newest first
    query = query.order_by(
        DriverNotification.created_on.desc(), DriverNotification.id.desc()
    )
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Driver]
@route_driver.get(
    URL_NOTIFICATION,
    tags=["Notification"],
    response_model=List[DriverNotificationSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches the notifications of the calling driver, newest first.
    Supports filtering by read state and tour.
    """,
)
async def fetch_notifications(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_driver),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        return searchNotification(session, token.account_id, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.get(
    URL_NOTIFICATION_UNREAD_COUNT,
    tags=["Notification"],
    response_model=UnreadCountSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Counts the unread notifications of the calling driver.
    """,
)
async def fetch_unread_count(bearer=Depends(bearer_driver)):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        unread = (
            session.query(DriverNotification)
            .filter(DriverNotification.driver_id == token.account_id)
            .filter(DriverNotification.is_read == False)
            .count()
        )
        return {"unread": unread}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.patch(
    URL_NOTIFICATION_READ,
    tags=["Notification"],
    response_model=DriverNotificationSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Marks one notification of the calling driver as read.
    Marking an already read notification changes nothing.
    """,
)
async def read_notification(
    fParam: ReadForm = Depends(),
    bearer=Depends(bearer_driver),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        notification = (
            session.query(DriverNotification)
            .filter(DriverNotification.id == fParam.id)
            .filter(DriverNotification.driver_id == token.account_id)
            .first()
        )
        if notification is None:
            raise exceptions.InvalidIdentifier()

        haveUpdates = not notification.is_read
        if haveUpdates:
            notification.is_read = True
            session.commit()
            session.refresh(notification)

        notificationData = jsonable_encoder(notification)
        if haveUpdates:
            logEvent(token, request_info, notificationData)
        return notificationData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_driver.patch(
    URL_NOTIFICATION_READ_ALL,
    tags=["Notification"],
    response_model=ReadAllSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Marks every unread notification of the calling driver as read.
    Returns the number of notifications changed.
    """,
)
async def read_all_notifications(
    bearer=Depends(bearer_driver),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.driverToken(bearer.credentials, session)

        updated = (
            session.query(DriverNotification)
            .filter(DriverNotification.driver_id == token.account_id)
            .filter(DriverNotification.is_read == False)
            .update({DriverNotification.is_read: True}, synchronize_session=False)
        )
        session.commit()

        if updated:
            logEvent(token, request_info, {"updated": updated})
        return {"updated": updated}
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
