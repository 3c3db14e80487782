"""
出库单金额计算

- 明细行金额：数量 × 单价，逐行四舍五入到分後再加總
- 税额 = 合计 × 税率 / 100，价税合计 = 合计 + 税额
- 价税合计轉為中文大寫金額
"""
import logging
import math
import re
from collections.abc import Mapping
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, localcontext
from typing import Any, Iterable, List, Optional

from pydantic import BaseModel

from delivery_note.config import CURRENCY_SYMBOL, DEFAULT_TAX_RATE

logger = logging.getLogger(__name__)

CENT = Decimal("0.01")
ZERO = Decimal("0")
HUNDRED = Decimal("100")
# 超過此數量級的輸入視為無效
MAX_EXPONENT = 20

DIGITS = ["零", "壹", "贰", "叁", "肆", "伍", "陆", "柒", "捌", "玖"]
UNITS = ["", "拾", "佰", "仟", "万", "拾", "佰", "仟", "亿"]
DECIMAL_UNITS = ["角", "分"]
# 万、亿所在的位數
GROUP_POSITIONS = (4, 8)

# 與瀏覽器 parseFloat 相同：只取字串開頭的數字部分
_NUMBER_PREFIX = re.compile(r"^\s*[+-]?(?:\d+(?:\.\d*)?|\.\d+)(?:[eE][+-]?\d+)?")


class AmountOutOfRangeError(ValueError):
    """金額超出可轉換範圍（負數或超過亿位）"""


class AggregateResult(BaseModel):
    amounts: List[Decimal]
    subtotal: Decimal
    taxRate: Decimal
    taxAmount: Decimal
    grandTotal: Decimal


class NoteSummary(BaseModel):
    amounts: List[str]
    subtotal: str
    taxAmount: str
    grandTotal: str
    taxRate: str
    amountInChinese: str


def parse_number(value: Any) -> Optional[Decimal]:
    """寬鬆解析數字，無法解析時返回 None"""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, Decimal):
        number = value
    elif isinstance(value, (int, float)):
        if isinstance(value, float) and not math.isfinite(value):
            return None
        number = Decimal(str(value))
    else:
        match = _NUMBER_PREFIX.match(str(value))
        if not match:
            return None
        try:
            number = Decimal(match.group(0).strip())
        except InvalidOperation:
            return None
    if not number.is_finite() or number.adjusted() > MAX_EXPONENT:
        return None
    return number


def parse_amount(value: Any) -> Decimal:
    """數量、單價：無效或負數一律視為 0"""
    number = parse_number(value)
    if number is None or number < 0:
        return ZERO
    return number


def parse_tax_rate(value: Any) -> Decimal:
    """税率（百分比）：無效或負數時使用預設税率"""
    number = parse_number(value)
    if number is None or number < 0:
        return Decimal(DEFAULT_TAX_RATE)
    return number


def money2(value: Decimal) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 60
        return value.quantize(CENT, rounding=ROUND_HALF_UP)


def _item_field(item: Any, *names: str) -> Any:
    for name in names:
        if isinstance(item, Mapping):
            value = item.get(name)
        else:
            value = getattr(item, name, None)
        if value is not None:
            return value
    return None


def line_amount(item: Any) -> Decimal:
    quantity = parse_amount(_item_field(item, "quantity"))
    price = parse_amount(_item_field(item, "price", "unitPrice"))
    return money2(quantity * price)


def aggregate(items: Iterable[Any], tax_rate: Any = None) -> AggregateResult:
    """
    計算明細合計、税额與价税合计

    合计是各行已四捨五入金額的加總，與畫面上顯示的行金額一致。
    """
    amounts = [line_amount(item) for item in items or []]
    subtotal = sum(amounts, ZERO)
    rate = parse_tax_rate(tax_rate)

    tax = subtotal * rate / HUNDRED
    return AggregateResult(
        amounts=amounts,
        subtotal=money2(subtotal),
        taxRate=rate,
        taxAmount=money2(tax),
        grandTotal=money2(subtotal + tax),
    )


def to_chinese_numeral(amount: Any) -> str:
    """將金額轉換為中文大寫，例如 113 -> 壹佰壹拾叁元整"""
    value = money2(Decimal(str(amount)))
    if value < 0:
        raise AmountOutOfRangeError(f"金額不可為負數: {value}")
    if value == 0:
        return "零元整"

    integer_part, decimal_part = f"{value:f}".split(".")
    if len(integer_part) > len(UNITS):
        raise AmountOutOfRangeError(f"金額超出可轉換範圍: {value}")

    result = ""
    if integer_part != "0":
        digits = [int(d) for d in reversed(integer_part)]
        pending_zero = False
        # 目前的萬位組內是否已輸出過非零數字
        group_seen = False

        for position, digit in enumerate(digits):
            unit = UNITS[position]

            if digit == 0:
                if position in GROUP_POSITIONS and any(digits[position:position + 4]):
                    # 萬位組有數字時，即使此位為零也要補上「万」
                    if pending_zero:
                        result = DIGITS[0] + result
                    result = unit + result
                    pending_zero = False
                    group_seen = False
                elif group_seen:
                    pending_zero = True
                continue

            if pending_zero:
                result = DIGITS[0] + result
                pending_zero = False
            result = DIGITS[digit] + unit + result
            group_seen = True

        result += "元"
    else:
        result = "零元"

    jiao, fen = int(decimal_part[0]), int(decimal_part[1])
    if jiao == 0 and fen == 0:
        result += "整"
    else:
        if jiao > 0:
            result += DIGITS[jiao] + DECIMAL_UNITS[0]
        if fen > 0:
            result += DIGITS[fen] + DECIMAL_UNITS[1]

    return result


def format_currency(value: Decimal) -> str:
    return f"{CURRENCY_SYMBOL}{money2(value):.2f}"


def format_rate(rate: Decimal) -> str:
    """税率顯示，去除多餘的小數零，例如 13 -> 13%、6.50 -> 6.5%"""
    normalized = rate.normalize()
    if normalized == normalized.to_integral_value():
        normalized = normalized.quantize(Decimal("1"))
    return f"{normalized:f}%"


def build_summary(items: Iterable[Any], tax_rate: Any = None) -> NoteSummary:
    """計算並格式化畫面顯示用的合計資料"""
    result = aggregate(items, tax_rate)

    try:
        amount_in_chinese = to_chinese_numeral(result.grandTotal)
    except AmountOutOfRangeError as e:
        logger.warning(f"無法轉換中文大寫金額: {e}")
        amount_in_chinese = ""

    return NoteSummary(
        amounts=[f"{amount:.2f}" for amount in result.amounts],
        subtotal=format_currency(result.subtotal),
        taxAmount=format_currency(result.taxAmount),
        grandTotal=format_currency(result.grandTotal),
        taxRate=format_rate(result.taxRate),
        amountInChinese=amount_in_chinese,
    )
