import math
import re
from datetime import date

_UNITS = (
    (1_000_000_000, "tỷ"),
    (1_000_000, "triệu"),
    (1_000, "nghìn"),
)


def _group(n: int) -> str:
    # vi-VN uses dots as thousand separators
    return f"{n:,}".replace(",", ".")


def _round_half_up(x: float) -> int:
    return int(math.floor(x + 0.5))


def _short_number(x: float) -> str:
    text = f"{x:.0f}" if x >= 10 else f"{x:.1f}"
    return text.replace(".", ",")


def format_vnd(amount, short: bool = False) -> str:
    """'1.500.000 ₫', or '2,5 tỷ ₫' / '850 triệu ₫' with short=True."""
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return "-"
    if math.isnan(value) or math.isinf(value):
        return "-"
    if value == 0:
        return "0 ₫"

    if short and abs(value) >= 1_000:
        sign = "-" if value < 0 else ""
        for size, unit in _UNITS:
            if abs(value) >= size:
                scaled = abs(value) / size
                if unit == "nghìn":
                    return f"{sign}{scaled:.0f} {unit} ₫"
                return f"{sign}{_short_number(scaled)} {unit} ₫"

    rounded = _round_half_up(value)
    sign = "-" if rounded < 0 else ""
    return f"{sign}{_group(abs(rounded))} ₫"


def format_currency(amount, currency: str = "VND", compact: bool = False, show_symbol: bool = True) -> str:
    try:
        value = float(amount)
    except (TypeError, ValueError):
        return "-"

    if currency == "VND":
        if compact and value >= 1_000_000:
            millions = value / 1_000_000
            text = f"{millions:.0f}" if millions % 1 == 0 else f"{millions:.1f}"
            return f"{text}M VND" if show_symbol else f"{text}M"
        if show_symbol:
            return format_vnd(value)
        return _group(_round_half_up(value))

    if currency == "USD":
        if compact and value >= 1_000:
            size, suffix = (1_000_000, "M") if value >= 1_000_000 else (1_000, "K")
            scaled = value / size
            text = f"{scaled:.0f}" if scaled % 1 == 0 else f"{scaled:.1f}"
            return f"${text}{suffix}" if show_symbol else f"{text}{suffix}"
        text = f"{value:,.0f}" if value % 1 == 0 else f"{value:,.2f}"
        return f"${text}" if show_symbol else text

    return f"{value:g} {currency}" if show_symbol else f"{value:g}"


_SHORT_RE = re.compile(r"([\d.,]+)\s*(tỷ|triệu|tr|nghìn|ngàn|k)\b", re.IGNORECASE)
_MULTIPLIERS = {
    "tỷ": 1_000_000_000,
    "triệu": 1_000_000,
    "tr": 1_000_000,
    "nghìn": 1_000,
    "ngàn": 1_000,
    "k": 1_000,
}


def parse_vnd(text: str) -> int:
    """
    Parse user input such as '1.500.000 ₫', '2,5 tỷ', '850tr' or '200k'.
    Returns 0 when nothing numeric is found.
    """
    if not text:
        return 0
    cleaned = text.strip().lower()

    m = _SHORT_RE.search(cleaned)
    if m:
        number = float(m.group(1).replace(",", "."))
        return _round_half_up(number * _MULTIPLIERS[m.group(2)])

    digits = re.sub(r"[₫\s]|vnd|đồng", "", cleaned).replace(",", "")
    if "." in digits:
        head, _, tail = digits.rpartition(".")
        if digits.count(".") == 1 and len(tail) <= 2:
            # '1.99' is a decimal, not a thousands group
            try:
                return _round_half_up(float(digits))
            except ValueError:
                return 0
        digits = digits.replace(".", "")
    try:
        return int(digits)
    except ValueError:
        return 0


def format_vi_date(d: date) -> str:
    try:
        return d.strftime("%d/%m/%Y")
    except AttributeError:
        return "-"


def format_month_label(d: date) -> str:
    return f"Tháng {d.month}/{d.year}"
