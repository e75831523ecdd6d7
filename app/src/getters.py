from fastapi import Request
from sqlalchemy.orm.session import Session

from app.src import schemas
from app.src.db import AccessToken, Account, Route, Bus


def requestInfo(request: Request) -> schemas.RequestInfo:
    """
    Extract metadata about the incoming request.

    Args:
        request (Request): FastAPI request object.

    Returns:
        schemas.RequestInfo: Pydantic model containing:
            - method (str): HTTP method (GET, POST, etc.).
            - path (str): Path portion of the request URL.
            - app_id (int): Application ID from app state.
    """
    return schemas.RequestInfo(
        method=request.method,
        path=request.url.path,
        app_id=request.scope["app"].state.id,
    )


def account(token: AccessToken, session: Session) -> Account | None:
    """Fetch the account a token belongs to."""
    return session.query(Account).filter(Account.id == token.account_id).first()


def route(route_id: int | None, session: Session) -> Route | None:
    """Fetch a route, None when the reference does not resolve."""
    if route_id is None:
        return None
    return session.query(Route).filter(Route.id == route_id).first()


def bus(bus_id: int | None, session: Session) -> Bus | None:
    """Fetch a bus, None when the reference does not resolve."""
    if bus_id is None:
        return None
    return session.query(Bus).filter(Bus.id == bus_id).first()


def routeLabel(route: Route | None) -> str:
    """Human readable "start → end" label of a route."""
    if route is None:
        return "unknown route"
    return f"{route.start} → {route.end}"


def driverBus(driver_id: int, session: Session) -> Bus | None:
    """Fetch the most recently added bus driven by an account."""
    return (
        session.query(Bus)
        .filter(Bus.driver_id == driver_id)
        .order_by(Bus.id.desc())
        .first()
    )
