"""Exact decimal handling of string-encoded ledger amounts.

Amounts arrive as unsigned integer strings in the asset's smallest unit.
They are scaled by ``10 ** denomination`` without ever passing through a
float or a rounding decimal context: sums are taken over integers and only
the final value is turned into a ``Decimal``.
"""
from __future__ import annotations

import re
from collections import defaultdict
from decimal import Decimal
from typing import Any, Callable, Iterable, Mapping, Optional

from ledgerlens.exceptions import MalformedRecord
from ledgerlens.schema import AssetMetadata, DenominatedValue

_UNSIGNED_INT = re.compile(r"[0-9]+")


def _scaled(raw: int, denomination: int) -> Decimal:
    digits = tuple(int(d) for d in str(raw))
    return Decimal((0, digits, -denomination))


def _check_denomination(denomination: int) -> None:
    if isinstance(denomination, bool) or not isinstance(denomination, int) or denomination < 0:
        raise MalformedRecord(f"Invalid denomination: {denomination!r}")


def parse_raw_amount(raw_value: Any) -> int:
    """Return the integer behind a raw amount string, or raise ``MalformedRecord``."""
    if isinstance(raw_value, int) and not isinstance(raw_value, bool) and raw_value >= 0:
        return raw_value
    if not isinstance(raw_value, str) or not _UNSIGNED_INT.fullmatch(raw_value):
        raise MalformedRecord(f"Amount is not an unsigned integer: {raw_value!r}")
    return int(raw_value)


def decode_amount(raw_value: str, denomination: int) -> Decimal:
    """Scale a raw integer amount string into an exact decimal.

    Args:
        raw_value: Unsigned integer in the asset's smallest unit, e.g. ``"1000000"``.
        denomination: Number of fractional digits of the asset.

    Returns:
        A ``Decimal`` with exactly ``denomination`` fractional digits.

    Examples:
        >>> decode_amount("1000000", 6)
        Decimal('1.000000')
        >>> decode_amount("0", 6)
        Decimal('0.000000')
    """
    _check_denomination(denomination)
    return _scaled(parse_raw_amount(raw_value), denomination)


def encode_amount(value: Decimal, denomination: int) -> str:
    """Inverse of ``decode_amount``: back to the raw integer string."""
    _check_denomination(denomination)
    if not value.is_finite() or value < 0:
        raise ValueError(f"Cannot encode amount {value!r}")
    _, digits, exponent = value.as_tuple()
    coefficient = int("".join(str(d) for d in digits)) if digits else 0
    shift = exponent + denomination
    if shift >= 0:
        return str(coefficient * 10 ** shift)
    raw, remainder = divmod(coefficient, 10 ** -shift)
    if remainder:
        raise ValueError(
            f"{value} has more than {denomination} fractional digits"
        )
    return str(raw)


def aggregate_amounts(
    items: Iterable[Any],
    key: Optional[Callable[[Any], Any]] = None,
) -> dict[str, Decimal]:
    """Sum amounts per asset id.

    Each item (or ``key(item)``) must expose ``asset_id``, ``raw_amount`` and
    ``denomination``, as ``Output`` does. Assets with no items are absent
    from the result.
    """
    raw_totals: dict[str, int] = defaultdict(int)
    denominations: dict[str, int] = {}
    for item in items:
        source = key(item) if key is not None else item
        asset_id = source.asset_id
        seen = denominations.setdefault(asset_id, source.denomination)
        if seen != source.denomination:
            raise MalformedRecord(
                f"Asset {asset_id} seen with denominations {seen} and {source.denomination}",
                record_id=getattr(source, "id", None),
            )
        raw_totals[asset_id] += parse_raw_amount(source.raw_amount)
    return {
        asset_id: _scaled(total, denominations[asset_id])
        for asset_id, total in raw_totals.items()
    }


def denominate_totals(
    totals: Mapping[str, Decimal],
    assets: Mapping[str, AssetMetadata],
) -> dict[str, DenominatedValue]:
    """Attach symbol and NFT flag to per-asset totals for display.

    Assets without metadata keep their id as the symbol.
    """
    result = {}
    for asset_id, amount in totals.items():
        meta = assets.get(asset_id)
        result[asset_id] = DenominatedValue(
            asset_id=asset_id,
            symbol=meta.symbol if meta else asset_id,
            amount=format(amount, "f"),
            is_nft=meta.is_nft if meta else False,
        )
    return result
