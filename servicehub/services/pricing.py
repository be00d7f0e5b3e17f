"""
Price resolution for catalog services.

Pure functions over already-loaded catalog rows. The cart and the quote flow
both call :func:`resolve_price`; a ``quote_only`` result means the service has
no price a client can pay up front and must go through a quote request.
"""

import math
from dataclasses import dataclass
from typing import Any, Iterable, Optional

from ..enums import ChargingType


@dataclass(frozen=True)
class PriceResolution:
    quote_only: bool
    unit_price: Optional[float] = None
    charging_type: Optional[ChargingType] = None
    charging_type_id: Optional[int] = None


QUOTE_ONLY = PriceResolution(quote_only=True)


def coerce_price(value: Any) -> float:
    """Read a stored price leniently. Missing, malformed or negative values count as 0."""
    if value is None:
        return 0.0
    try:
        price = float(value)
    except (TypeError, ValueError):
        return 0.0
    if math.isnan(price) or math.isinf(price) or price < 0:
        return 0.0
    return round(price, 2)


def _priced(option: Any) -> Optional[PriceResolution]:
    price = coerce_price(getattr(option, "price", None))
    charging_type = getattr(option, "charging_type", None)

    if price > 0:
        return PriceResolution(False, price, charging_type, option.id)
    if charging_type == ChargingType.FREE:
        return PriceResolution(False, 0.0, charging_type, option.id)
    return None


def resolve_price(
    service: Any,
    charging_options: Iterable[Any],
    requested_option_id: Optional[int] = None,
) -> PriceResolution:
    """
    Pick the unit price a client pays for ``service``.

    Order of preference:
        1. the requested option, when it is active and priced
        2. the first active option with a strictly positive price
        3. the service's flat price, when positive
        4. an explicit ``free`` option (price 0.00)

    Anything else is quote-only.
    """
    options = [o for o in charging_options or [] if getattr(o, "is_active", True) is not False]

    if requested_option_id is not None:
        requested = next((o for o in options if o.id == requested_option_id), None)
        if requested is not None:
            resolution = _priced(requested)
            if resolution is not None:
                return resolution

    for option in options:
        if coerce_price(getattr(option, "price", None)) > 0:
            return _priced(option)

    flat_price = coerce_price(getattr(service, "price", None))
    if flat_price > 0:
        return PriceResolution(False, flat_price, ChargingType.FIXED, None)

    free_option = next((o for o in options if getattr(o, "charging_type", None) == ChargingType.FREE), None)
    if free_option is not None:
        return _priced(free_option)

    return QUOTE_ONLY
