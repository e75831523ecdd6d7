from datetime import datetime
from enum import IntEnum
from typing import List
from fastapi import APIRouter, Depends, Query, Form
from sqlalchemy.orm.session import Session
from fastapi.encoders import jsonable_encoder
from pydantic import BaseModel, Field

from app.api.bearer import bearer_admin
from app.src.db import sessionMaker, Account
from app.src import exceptions, validators, getters
from app.src.loggers import logEvent
from app.src.enums import OrderIn, UserRole
from app.src.schemas import AccountSchema
from app.src.functions import enumStr, makeExceptionResponses
from app.src.urls import URL_ACCOUNT, URL_ACCOUNT_ROLE

route_admin = APIRouter()


## Input Forms
class RoleForm(BaseModel):
    id: int = Field(Form())
    role: UserRole = Field(Form(description=enumStr(UserRole)))


## Query Parameters
class OrderBy(IntEnum):
    id = 1
    display_name = 2
    created_on = 3


class QueryParams(BaseModel):
    # filters
    role: UserRole | None = Field(Query(default=None, description=enumStr(UserRole)))
    display_name: str | None = Field(Query(default=None))
    email_id: str | None = Field(Query(default=None))
    # id based
    id: int | None = Field(Query(default=None))
    id_list: List[int] | None = Field(Query(default=None))
    # created_on based
    created_on_ge: datetime | None = Field(Query(default=None))
    created_on_le: datetime | None = Field(Query(default=None))
    # Ordering
    order_by: OrderBy = Field(Query(default=OrderBy.id, description=enumStr(OrderBy)))
    order_in: OrderIn = Field(Query(default=OrderIn.DESC, description=enumStr(OrderIn)))
    # Pagination
    offset: int = Field(Query(default=0, ge=0))
    limit: int = Field(Query(default=20, gt=0, le=100))


## Function
def searchAccount(session: Session, qParam: QueryParams) -> List[Account]:
    query = session.query(Account)

    # Filters
    if qParam.role is not None:
        query = query.filter(Account.role == qParam.role.value)
    if qParam.display_name is not None:
        query = query.filter(Account.display_name.ilike(f"%{qParam.display_name}%"))
    if qParam.email_id is not None:
        query = query.filter(Account.email_id.ilike(f"%{qParam.email_id}%"))
    # id based
    if qParam.id is not None:
        query = query.filter(Account.id == qParam.id)
    if qParam.id_list is not None:
        query = query.filter(Account.id.in_(qParam.id_list))
    # created_on based
    if qParam.created_on_ge is not None:
        query = query.filter(Account.created_on >= qParam.created_on_ge)
    if qParam.created_on_le is not None:
        query = query.filter(Account.created_on <= qParam.created_on_le)

    # Ordering
    orderingAttribute = getattr(Account, OrderBy(qParam.order_by).name)
    if qParam.order_in == OrderIn.ASC:
        query = query.order_by(orderingAttribute.asc())
    else:
        query = query.order_by(orderingAttribute.desc())

    # Pagination
    query = query.offset(qParam.offset).limit(qParam.limit)
    return query.all()


## API endpoints [Admin]
@route_admin.get(
    URL_ACCOUNT,
    tags=["Account"],
    response_model=List[AccountSchema],
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission]
    ),
    description="""
    Fetches a list of user accounts.
    Supports filtering by role, name, email and metadata.
    Requires a valid admin token.
    """,
)
async def fetch_accounts(
    qParam: QueryParams = Depends(),
    bearer=Depends(bearer_admin),
):
    try:
        session = sessionMaker()
        validators.adminToken(bearer.credentials, session)

        return searchAccount(session, qParam)
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()


@route_admin.patch(
    URL_ACCOUNT_ROLE,
    tags=["Account"],
    response_model=AccountSchema,
    responses=makeExceptionResponses(
        [exceptions.InvalidToken, exceptions.NoPermission, exceptions.InvalidIdentifier]
    ),
    description="""
    Changes the role of a user account.
    The role decides which application the account may use.
    Tours and buses already referring to the account are not revisited.
    Logs the role change with the associated token.
    """,
)
async def update_account_role(
    fParam: RoleForm = Depends(),
    bearer=Depends(bearer_admin),
    request_info=Depends(getters.requestInfo),
):
    try:
        session = sessionMaker()
        token = validators.adminToken(bearer.credentials, session)

        account = session.query(Account).filter(Account.id == fParam.id).first()
        if account is None:
            raise exceptions.InvalidIdentifier()

        haveUpdates = account.role != fParam.role.value
        if haveUpdates:
            account.role = fParam.role.value
            session.commit()
            session.refresh(account)

        accountData = jsonable_encoder(account)
        if haveUpdates:
            logEvent(token, request_info, accountData)
        return accountData
    except Exception as e:
        exceptions.handle(e)
    finally:
        session.close()
