import math
from datetime import datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import List, Type, Dict, Any
from pydantic import BaseModel

from app.src import schemas
from app.src.exceptions import APIException


def makeExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Exception classes without constructor arguments may be passed as-is,
    they are instantiated to read their status code and detail.

    Args:
        exceptions (List[APIException]): List of exceptions or exception classes.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
        if isinstance(exception, type):
            exception = exception()
        status_code = exception.status_code
        example_key = type(exception).__name__
        example_value = {
            "summary": str(exception.headers),
            "value": {"detail": exception.detail},
        }

        if status_code not in responses:
            responses[status_code] = {
                "model": schemas.ErrorResponse,
                "content": {
                    "application/json": {"examples": {example_key: example_value}}
                },
            }
        else:
            responses[status_code]["content"]["application/json"]["examples"][
                example_key
            ] = example_value

    return responses


def enumStr(enumClass) -> str:
    """
    Convert an Enum class into a comma-separated string of its members.

    Each enum member is formatted as "<NAME>: <VALUE>".

    Example:
        >>> from enum import Enum
        >>> class Color(Enum):
        ...     RED = 1
        ...     GREEN = 2
        >>> enumStr(Color)
        'RED: 1, GREEN: 2'
    """
    return ", ".join(f"{x.name}: {x.value}" for x in enumClass)


def isValidTransition(
    transitions: dict[Any, list[Any]], old_state: Any, new_state: Any
) -> bool:
    """
    Check if a state transition is valid.

    Args:
        transitions (dict[Any, list[Any]]): Mapping of valid transitions.
            Example:
                {
                    "scheduled": ["started"],
                    "started": ["in-progress"],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
        - Both states can be any type (enum, int, str), as long as they match keys/values in the mapping.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Example:
        >>> updateIfChanged(
        ...     bus,
        ...     fParam,
        ...     [
        ...         Bus.seats.key,
        ...         Bus.license_info.key,
        ...     ],
        ... )
        # bus will be updated where values differ; unchanged fields are skipped silently
    """
    for field in fields:
        new_value = getattr(sourceObj, field, None)
        if new_value is not None:
            old_value = getattr(targetObj, field)
            if old_value != new_value:
                setattr(targetObj, field, new_value)


def promoteToParent(
    childObj: BaseModel, targetCls: Type[BaseModel], **overrides
) -> BaseModel:
    """
    Promote one Pydantic model into another, applying overrides
    and defaulting missing fields to None.

    Useful when a role specific query model (`childObj`) needs to be
    adapted into the broader admin model (`targetCls`), for example to pin
    `driver_id` to the caller.

    Example:
        >>> class Child(BaseModel):
        ...     status: str | None
        ...
        >>> class Parent(BaseModel):
        ...     status: str | None
        ...     driver_id: int | None
        ...
        >>> promoteToParent(Child(status="scheduled"), Parent, driver_id=42)
        Parent(status='scheduled', driver_id=42)
    """
    baseData = childObj.model_dump()
    targetFields = targetCls.model_fields.keys()
    finalData = {
        field: overrides.get(field, baseData.get(field, None)) for field in targetFields
    }
    return targetCls(**finalData)


def minutesUntil(moment: datetime, now: datetime) -> int:
    """
    Whole minutes from `now` until `moment`, rounded towards negative infinity.

    Example:
        >>> minutesUntil(datetime(2025, 1, 1, 10, 0), datetime(2025, 1, 1, 9, 54, 30))
        5
        >>> minutesUntil(datetime(2025, 1, 1, 10, 0), datetime(2025, 1, 1, 10, 0, 1))
        -1
    """
    return math.floor((moment - now).total_seconds() / 60)


def roundHalfUp(value: float | Decimal) -> int:
    """Round to the nearest integer, halves away from zero."""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def toUTC(moment: datetime | None) -> datetime | None:
    """Timezone aware UTC copy of `moment`, naive values are taken as UTC."""
    if moment is None:
        return None
    if moment.tzinfo is None:
        return moment.replace(tzinfo=timezone.utc)
    return moment.astimezone(timezone.utc)
