# utils/formatting.py

def _group_indian(digits: str) -> str:
    """Group an integer string the Indian way: 1234567 -> 12,34,567."""
    if len(digits) <= 3:
        return digits
    head, tail = digits[:-3], digits[-3:]
    groups = []
    while len(head) > 2:
        groups.insert(0, head[-2:])
        head = head[:-2]
    if head:
        groups.insert(0, head)
    return ",".join(groups) + "," + tail


def format_rupee(amount: float) -> str:
    """
    Format an amount as rupees with Indian digit grouping.
    Example: 123456 -> "₹1,23,456", 60.5 -> "₹60.50"
    """
    amount = amount or 0
    sign = "-" if amount < 0 else ""
    amount = abs(amount)

    if float(amount).is_integer():
        return f"{sign}₹{_group_indian(str(int(amount)))}"

    whole, frac = f"{amount:.2f}".split(".")
    return f"{sign}₹{_group_indian(whole)}.{frac}"


def format_quantity(qty: float, unit: str = "") -> str:
    text = str(int(qty)) if float(qty).is_integer() else f"{qty:g}"
    return f"{text} {unit}".strip()


def format_stock(qty: float, unit: str = "", low: bool = False) -> str:
    text = format_quantity(qty, unit)
    return f"{text} ⚠️ low" if low else text
