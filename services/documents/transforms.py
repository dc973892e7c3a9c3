"""
Field Transforms

Functions that turn raw record values into the literal strings drawn
on the cover sheet. Each transform is registered by name and can be
referenced in the YAML layout.

Usage in YAML:
    - key: sale_price
      source: property.sale_price
      transform: currency

Every value also passes through `sanitize_text` so exotic Unicode
spaces never reach the PDF fonts.
"""

import logging
import math
import re
from datetime import datetime, date
from typing import Any, Callable, Dict, Optional

from .types import AgentRole

logger = logging.getLogger(__name__)

# Type alias for transform functions
TransformFunc = Callable[[Any], str]

# Narrow, thin and figure spaces have no glyph in the base-14 fonts
EXOTIC_SPACES = re.compile('[\u202F\u00A0\u2003\u2002\u2009\u200A\u2007\u205F]')

ROLE_LABELS = {
    AgentRole.SELLER_SIDE: "LISTING AGENT",
    AgentRole.BUYER_SIDE: "BUYERS AGENT",
    AgentRole.DUAL: "DUAL AGENT",
}


def sanitize_text(value: Any) -> str:
    """
    Replace exotic Unicode spaces with a plain space and trim.

    Examples:
        "123 Main St " -> "123 Main St"
        None -> ""
    """
    if value is None:
        return ""
    return EXOTIC_SPACES.sub(' ', str(value)).strip()


def _to_number(value: Any) -> Optional[float]:
    if isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        number = float(value)
    else:
        text = sanitize_text(value).replace('$', '').replace(',', '').replace('%', '').strip()
        if not text:
            return None
        number = float(text)
    if not math.isfinite(number):
        raise ValueError(f"not a finite number: {value}")
    return number


def transform_currency(value: Any) -> str:
    """
    Format a number as whole US dollars.

    Examples:
        500000 -> "$500000"
        "350,000" -> "$350000"
        1234.5 -> "$1234"
    """
    if value is None:
        return ""

    try:
        number = _to_number(value)
        if number is None:
            return ""
        return f"${int(number)}"
    except (ValueError, TypeError):
        logger.warning(f"Could not format as currency: {value}")
        return sanitize_text(value)


def transform_percent(value: Any) -> str:
    """
    Format a number as a percentage.

    Examples:
        6 -> "6%"
        "2.5" -> "2.5%"
        "3%" -> "3%"
    """
    if value is None:
        return ""

    try:
        num = _to_number(value)
        if num is None:
            return ""
        if num == int(num):
            return f"{int(num)}%"
        return f"{num}%"
    except (ValueError, TypeError):
        logger.warning(f"Could not format as percent: {value}")
        return sanitize_text(value)


def transform_date_short(value: Any) -> str:
    """
    Format a date in short US format.

    Examples:
        "2026-01-15" -> "01/15/2026"
        date(2026, 1, 15) -> "01/15/2026"
    """
    if value is None:
        return ""

    if isinstance(value, (datetime, date)):
        return value.strftime("%m/%d/%Y")

    text = sanitize_text(value)
    if not text:
        return ""
    for fmt in ["%Y-%m-%d", "%m/%d/%Y", "%m-%d-%Y"]:
        try:
            return datetime.strptime(text, fmt).strftime("%m/%d/%Y")
        except ValueError:
            continue

    logger.warning(f"Could not parse date: {value}")
    return text


def transform_role_label(value: Any) -> str:
    """Canonical role (or any free-form role string) to its printed label."""
    if value is None or value == "":
        return ""
    return ROLE_LABELS[AgentRole.normalize(value)]


def transform_uppercase(value: Any) -> str:
    """Convert to uppercase."""
    if value is None:
        return ""
    return sanitize_text(value).upper()


def transform_text(value: Any) -> str:
    """No transformation, just sanitize."""
    return sanitize_text(value)


# Registry of available transforms
TRANSFORMS: Dict[str, TransformFunc] = {
    'currency': transform_currency,
    'percent': transform_percent,
    'date_short': transform_date_short,
    'role_label': transform_role_label,
    'uppercase': transform_uppercase,
    'text': transform_text,
}


def get_transform(name: str) -> Optional[TransformFunc]:
    """Get a transform function by name."""
    return TRANSFORMS.get(name)


def apply_transform(value: Any, transform_name: Optional[str]) -> str:
    """
    Apply a named transform to a value, then sanitize the result.

    If transform_name is None the value is only sanitized. Unknown
    names are rejected when the layout loads, so they are not expected
    here.
    """
    if value is None:
        return ""

    transform_func = get_transform(transform_name or 'text')
    if transform_func is None:
        logger.warning(f"Unknown transform: {transform_name}")
        transform_func = transform_text
    return sanitize_text(transform_func(value))
