"""
JSON-ready views of ORM rows.

Keys are camelCase, money is a two-decimal string, dates are ISO-8601.
"""
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any, Dict, Optional

from pydantic.alias_generators import to_camel
from sqlalchemy import inspect as sa_inspect

from crm_ledger.database.models import Base, User


def to_json_value(value: Any) -> Any:
    """Convert a column value into its JSON representation."""
    if isinstance(value, Decimal):
        return f"{value:.2f}"
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    return value


def row_to_dict(row: Base) -> Dict[str, Any]:
    """Serialize every mapped column of ``row`` under its camelCase attribute name."""
    mapper = sa_inspect(row).mapper
    return {
        to_camel(attr.key): to_json_value(getattr(row, attr.key))
        for attr in mapper.column_attrs
    }


def approver_view(user: Optional[User]) -> Optional[Dict[str, Any]]:
    """Display identity of the user who approved or rejected a financing payment."""
    if user is None:
        return None
    return {
        "id": user.id,
        "name": user.full_name,
        "designation": user.designation,
        "role": user.role,
    }
