import re
from decimal import Decimal

import pytest

from app.api.order import ORDER_STATUS_TRANSITIONS
from app.api.payment import PAYMENT_STATUS_TRANSITIONS
from app.src import exceptions, validators
from app.src.db import Order
from app.src.enums import OrderStatus, PaymentStatus
from app.src.functions import (
    toMoney,
    computeTotalAmount,
    generateOrderNumber,
    isValidTransition,
)


def test_to_money_rounds_half_up():
    assert toMoney("1.005") == Decimal("1.01")
    assert toMoney("2.675") == Decimal("2.68")
    assert toMoney(0.1) == Decimal("0.10")
    assert toMoney(100) == Decimal("100.00")


def test_total_amount_is_exact():
    assert computeTotalAmount(Decimal("100.00"), Decimal("1.50")) == Decimal("150.00")
    assert computeTotalAmount(Decimal("33.33"), Decimal("3.00")) == Decimal("99.99")
    assert computeTotalAmount(Decimal("0.50"), Decimal("1.25")) == Decimal("0.63")


def test_order_number_format():
    orderNumber = generateOrderNumber()
    assert re.fullmatch(r"FT-\d{8}-[0-9a-f]{8}", orderNumber)
    assert generateOrderNumber() != orderNumber


def test_terminal_states_have_no_exit():
    for status in OrderStatus:
        assert not isValidTransition(ORDER_STATUS_TRANSITIONS, OrderStatus.DELIVERED, status)
        assert not isValidTransition(ORDER_STATUS_TRANSITIONS, OrderStatus.CANCELLED, status)
    for status in PaymentStatus:
        assert not isValidTransition(PAYMENT_STATUS_TRANSITIONS, PaymentStatus.FAILED, status)
        assert not isValidTransition(PAYMENT_STATUS_TRANSITIONS, PaymentStatus.REFUNDED, status)


def test_stored_integer_states_are_accepted():
    assert isValidTransition(ORDER_STATUS_TRANSITIONS, 1, OrderStatus.CONFIRMED)
    assert isValidTransition(PAYMENT_STATUS_TRANSITIONS, 2, PaymentStatus.REFUNDED)


def test_state_transition_error_names_both_states():
    with pytest.raises(exceptions.InvalidStateTransition) as error:
        validators.stateTransition(
            ORDER_STATUS_TRANSITIONS, 4, OrderStatus.CONFIRMED, Order.status
        )
    assert error.value.detail == "The status cannot be changed from DELIVERED to CONFIRMED"
