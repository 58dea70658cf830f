"""
JSON shaping for read-side results: money as decimal strings, dates as ISO-8601.
"""
from dataclasses import asdict
from decimal import Decimal
from typing import Any

from fastapi.encoders import jsonable_encoder

from app.domain.due_status import DueStatus
from app.domain.subscription_period import SubscriptionPeriod


def _with_properties(*props: str):
    # Computed properties are part of the public shape
    def encode(value) -> dict:
        data = asdict(value)
        for prop in props:
            data[prop] = getattr(value, prop)
        return to_json(data)
    return encode


_ENCODERS = {
    Decimal: str,
    SubscriptionPeriod: _with_properties("is_open", "label"),
    DueStatus: _with_properties("is_overdue"),
}


def to_json(value: Any) -> Any:
    return jsonable_encoder(value, custom_encoder=_ENCODERS)
