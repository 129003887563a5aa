from datetime import datetime
import time


def utc_now() -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime())


def utc_ago(seconds: float) -> str:
    return time.strftime("%Y-%m-%dT%H:%M:%SZ", time.gmtime(time.time() - seconds))


def utc_today() -> str:
    return time.strftime("%Y-%m-%d", time.gmtime())


def format_day_month_year(value: str) -> str:
    """Render an ISO date or datetime as DD/MM/YYYY, passing through junk."""
    if not value:
        return ""
    try:
        return datetime.fromisoformat(value[:10]).strftime("%d/%m/%Y")
    except ValueError:
        return value
