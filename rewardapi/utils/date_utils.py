from datetime import date, datetime, time, timedelta, timezone
from typing import Tuple


def utcnow() -> datetime:
    """현재 UTC 시각 (naive). DB 컬럼은 모두 UTC naive datetime으로 저장한다."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def utc_today() -> date:
    return utcnow().date()


def day_bounds(day: date) -> Tuple[datetime, datetime]:
    """
    UTC 기준 하루의 시작/끝 반환

    Returns:
        (start, end): start <= t < end
    """
    start = datetime.combine(day, time.min)
    return start, start + timedelta(days=1)
