from decimal import ROUND_HALF_UP, Decimal


def round_half_up(value: float) -> int:
    """0.5는 항상 올림 (파이썬 기본 round의 banker's rounding 회피)"""
    return int(Decimal(str(value)).quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def clamp(value: float, lower: float, upper: float) -> float:
    return max(lower, min(upper, value))
