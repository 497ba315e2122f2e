from typing import List, Type, Dict, Any
from decimal import Decimal, ROUND_HALF_UP
from datetime import datetime, timezone
from secrets import token_hex

from app.src import schemas
from app.src.exceptions import APIException
from app.src.constants import (
    DECIMAL_QUANTUM,
    ORDER_NUMBER_PREFIX,
    ORDER_NUMBER_RANDOM_BYTES,
)
from pydantic import BaseModel


def fuseExceptionResponses(exceptions: List[APIException]) -> Dict[int, dict]:
    """
    Generate OpenAPI response documentation by fusing multiple APIException instances.

    Args:
        exceptions (List[APIException]): List of instantiated exceptions.

    Returns:
        Dict[int, dict]: A dictionary of OpenAPI response specs grouped by status code.
    """
    responses = {}

    for exception in exceptions:
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
        >>> from enum import IntEnum
        >>> class Color(IntEnum):
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
                    "PENDING": ["CONFIRMED", "CANCELLED"],
                    "CONFIRMED": ["IN_TRANSIT", "CANCELLED"],
                }
        old_state (Any): Current state value.
        new_state (Any): Desired new state value.

    Returns:
        bool: True if transition is valid, False otherwise.

    Notes:
        - If `old_state` is not in the transitions mapping, this will return False.
        - Terminal states map to an empty list.
    """
    if not transitions:
        return False
    if old_state not in transitions:
        return False
    return new_state in transitions[old_state]


def toMoney(value: Decimal | int | float | str) -> Decimal:
    """
    Quantize a value to the fixed 2 decimal places used by money and
    quantity columns, rounding half up.

    Floats are converted through their string form so that binary
    representation errors never reach the database.

    Example:
        >>> toMoney("1.005")
        Decimal('1.01')
        >>> toMoney(100)
        Decimal('100.00')
    """
    if isinstance(value, float):
        value = str(value)
    return Decimal(value).quantize(DECIMAL_QUANTUM, rounding=ROUND_HALF_UP)


def computeTotalAmount(quantity: Decimal, price_per_liter: Decimal) -> Decimal:
    """
    Compute the total amount of an order.

    Example:
        >>> computeTotalAmount(Decimal("100.00"), Decimal("1.50"))
        Decimal('150.00')
    """
    return toMoney(toMoney(quantity) * toMoney(price_per_liter))


def generateOrderNumber() -> str:
    """
    Generate a unique-looking order reference such as `FT-20260101-1a2b3c4d`.

    Uniqueness is still enforced by the database constraint.
    """
    today = datetime.now(timezone.utc).strftime("%Y%m%d")
    return f"{ORDER_NUMBER_PREFIX}-{today}-{token_hex(ORDER_NUMBER_RANDOM_BYTES)}"


def updateIfChanged(targetObj, sourceObj, fields: List[str]) -> None:
    """
    Update attributes on a target object from a source object
    only if the values differ and the new value is not None.

    Designed for use with SQLAlchemy models, where `fields` are typically
    provided as `Model.field.key`.

    Example:
        >>> updateIfChanged(
        ...     vehicle,
        ...     fParam,
        ...     [
        ...         Vehicle.brand.key,
        ...         Vehicle.capacity.key,
        ...     ],
        ... )
        # vehicle will be updated where values differ; unchanged fields are skipped silently
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

    Useful when an audience specific query model needs to be adapted into
    the broader model accepted by a search function.

    Example:
        >>> class Child(BaseModel):
        ...     status: int | None
        ...
        >>> class Parent(BaseModel):
        ...     status: int | None
        ...     user_id: int | None
        ...
        >>> promoteToParent(Child(status=1), Parent, user_id=42)
        Parent(status=1, user_id=42)
    """
    baseData = childObj.model_dump()
    targetFields = targetCls.model_fields.keys()
    finalData = {
        field: overrides.get(field, baseData.get(field, None)) for field in targetFields
    }
    return targetCls(**finalData)
