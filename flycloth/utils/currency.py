"""
货币工具：金额展示格式与 Stripe 最小货币单位（分）之间的换算
"""
from decimal import Decimal, ROUND_HALF_UP

from flycloth.core.config import CURRENCY

_CENT = Decimal("0.01")


def to_decimal(amount) -> Decimal:
    """任意数值转为两位小数的 Decimal"""
    if not isinstance(amount, Decimal):
        amount = Decimal(str(amount))
    return amount.quantize(_CENT, rounding=ROUND_HALF_UP)


def format_currency(amount) -> str:
    """格式化为展示金额，如 RM1,234.50"""
    return f"{CURRENCY['symbol']}{to_decimal(amount):,.{CURRENCY['decimals']}f}"


def to_cents(amount) -> int:
    """金额转为分（Stripe 使用的单位）"""
    return int((to_decimal(amount) * 100).to_integral_value(rounding=ROUND_HALF_UP))


def from_cents(cents: int | None) -> Decimal:
    """分转回金额"""
    return to_decimal(Decimal(cents or 0) / 100)
