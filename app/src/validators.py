"""
Validation and permission checks for the Tour Bus API.

This module centralizes guard logic such as:
- Token validation
- Role-based permission checks
- Referential checks against the store
- State transition enforcement

All functions raise appropriate exceptions from `app.src.exceptions`
when validation fails, ensuring consistent error handling.
"""

from datetime import datetime, timezone
from typing import Any
from sqlalchemy import Column
from sqlalchemy.orm import Session

from app.src.db import AccessToken, Account, Route, Bus
from app.src.constants import MIN_STOPS_IN_ROUTE
from app.src.enums import UserRole
from app.src import exceptions
from app.src.functions import isValidTransition


# ---------------------------------------------------------------------------
# Token validation
# ---------------------------------------------------------------------------
def _validate_token(access_token: str, session: Session, role: UserRole):
    """
    Generic token validator for every role specific application.

    Args:
        access_token (str): The bearer token string provided by the client.
        session (Session): Active SQLAlchemy session for DB lookup.
        role (UserRole): Role the owning account must have.

    Returns:
        AccessToken: The valid token object from the database.

    Raises:
        exceptions.InvalidToken: If the token is not found or has expired.
        exceptions.NoPermission: If the account does not have the role.
    """
    current_time = datetime.now(timezone.utc)

    token = (
        session.query(AccessToken)
        .filter(
            AccessToken.access_token == access_token,
            AccessToken.expires_at > current_time,
        )
        .first()
    )
    if token is None:
        raise exceptions.InvalidToken()

    account = session.query(Account).filter(Account.id == token.account_id).first()
    if account is None:
        raise exceptions.InvalidToken()
    if account.role != role:
        raise exceptions.NoPermission()
    return token


def adminToken(access_token: str, session: Session) -> AccessToken:
    """Validate an administrator access token."""
    return _validate_token(access_token, session, UserRole.ADMIN)


def driverToken(access_token: str, session: Session) -> AccessToken:
    """Validate a driver access token."""
    return _validate_token(access_token, session, UserRole.DRIVER)


def ownerToken(access_token: str, session: Session) -> AccessToken:
    """Validate a bus owner access token."""
    return _validate_token(access_token, session, UserRole.OWNER)


def passengerToken(access_token: str, session: Session) -> AccessToken:
    """Validate a passenger access token."""
    return _validate_token(access_token, session, UserRole.PASSENGER)


# ---------------------------------------------------------------------------
# Referential checks
# ---------------------------------------------------------------------------
def existingRoute(route_id: int, session: Session, column: Column) -> Route:
    """
    Resolve a route reference or fail.

    Raises:
        exceptions.DanglingReference: If no route has this id.
    """
    route = session.query(Route).filter(Route.id == route_id).first()
    if route is None:
        raise exceptions.DanglingReference(column)
    return route


def existingBus(bus_id: int, session: Session, column: Column) -> Bus:
    """
    Resolve a bus reference or fail.

    Raises:
        exceptions.DanglingReference: If no bus has this id.
    """
    bus = session.query(Bus).filter(Bus.id == bus_id).first()
    if bus is None:
        raise exceptions.DanglingReference(column)
    return bus


def existingAccount(
    account_id: int, session: Session, column: Column, role: UserRole
) -> Account:
    """
    Resolve an account reference and check its role.

    Raises:
        exceptions.DanglingReference: If no account has this id.
        exceptions.InvalidValue: If the account has another role.
    """
    account = session.query(Account).filter(Account.id == account_id).first()
    if account is None:
        raise exceptions.DanglingReference(column)
    if account.role != role:
        raise exceptions.InvalidValue(column)
    return account


# ---------------------------------------------------------------------------
# Other validations
# ---------------------------------------------------------------------------
def stateTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any, state: Column
) -> bool:
    """
    Validate whether a state transition is allowed.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.
        state (Column): SQLAlchemy column representing the state
            (used to format error messages).

    Returns:
        bool: True if the transition is valid.

    Raises:
        exceptions.InvalidStateTransition: If the transition is not permitted.
    """
    if not isValidTransition(transitions, old_state, new_state):
        raise exceptions.InvalidStateTransition(state, old_state, new_state)
    return True


def timeWindow(start: datetime, end: datetime, column: Column) -> bool:
    """
    Validate that a window starts strictly before it ends.

    Raises:
        exceptions.InvalidValue: If `start` is not before `end`.
    """
    if start >= end:
        raise exceptions.InvalidValue(column)
    return True


def routeStops(stops: list[str], column: Column) -> list[str]:
    """
    Validate and normalize the ordered stop list of a route.

    Conditions:
        - Must contain at least MIN_STOPS_IN_ROUTE stops.
        - Stop names must not be blank.

    Returns:
        list[str]: The stop names with surrounding whitespace removed.

    Raises:
        exceptions.InvalidValue: If a condition is not met.
    """
    stops = [stop.strip() for stop in stops]
    if len(stops) < MIN_STOPS_IN_ROUTE or not all(stops):
        raise exceptions.InvalidValue(column)
    return stops
