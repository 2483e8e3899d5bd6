"""Parsing of the date formats sent by the CRM front end."""
import re
from datetime import date, datetime

_DAY_FIRST = re.compile(r"^(\d{2})-(\d{2})-(\d{4})$")
_ISO_DATE = re.compile(r"^(\d{4})-(\d{2})-(\d{2})$")


def parse_frontend_date(value: str | date | datetime | None) -> date | None:
    """
    Parse a front-end date string into a ``date``.

    Accepts ``DD-MM-YYYY``, ``YYYY-MM-DD`` and full ISO-8601 datetimes.
    Empty values give ``None``.

    Raises:
        ValueError: If the value is not a valid calendar date
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value

    text = str(value).strip()
    if not text:
        return None

    match = _DAY_FIRST.match(text)
    if match:
        day, month, year = (int(part) for part in match.groups())
        return date(year, month, day)

    match = _ISO_DATE.match(text)
    if match:
        year, month, day = (int(part) for part in match.groups())
        return date(year, month, day)

    try:
        return datetime.fromisoformat(text.replace("Z", "+00:00")).date()
    except ValueError:
        raise ValueError(f"Invalid date '{text}', expected DD-MM-YYYY or YYYY-MM-DD") from None
