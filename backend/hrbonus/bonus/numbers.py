"""數值解析與金額進位：讀取資料的邊界一律嚴格轉 Decimal，不允許 NaN/Infinity 往下傳。"""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any, Optional

from hrbonus.bonus.errors import BonusValidationError

CENT = Decimal("0.01")


def to_finite_decimal(value: Any) -> Optional[Decimal]:
    """
    寬鬆轉換：可解析為有限數值時回傳 Decimal，否則回傳 None。
    bool 不視為數值；空字串視為 None。
    """
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        d = value
    else:
        s = str(value).strip()
        if not s:
            return None
        try:
            d = Decimal(s)
        except (InvalidOperation, ValueError):
            return None
    if not d.is_finite():
        return None
    return d


def parse_decimal(
    value: Any,
    field_name: str,
    *,
    default: Optional[Decimal] = None,
    minimum: Optional[Decimal] = None,
    maximum: Optional[Decimal] = None,
) -> Decimal:
    """
    嚴格轉換：None 時回傳 default（無 default 則報錯）；無法解析或超出範圍一律 BonusValidationError。
    """
    if value is None:
        if default is None:
            raise BonusValidationError(f"{field_name} 不可為空")
        return default
    d = to_finite_decimal(value)
    if d is None:
        raise BonusValidationError(f"{field_name} 數值格式錯誤: {value!r}")
    if minimum is not None and d < minimum:
        raise BonusValidationError(f"{field_name} 不可小於 {minimum}（目前 {d}）")
    if maximum is not None and d > maximum:
        raise BonusValidationError(f"{field_name} 不可大於 {maximum}（目前 {d}）")
    return d


def round_money(d: Decimal) -> Decimal:
    """金額四捨五入至小數兩位"""
    return d.quantize(CENT, rounding=ROUND_HALF_UP)
