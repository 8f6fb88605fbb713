"""Strict format validation for text-typed numeric lab results.

Values are validated against a whole-field numeric format before parsing.
Anything carrying qualifiers, ranges, units or words ("<5", "1-2", "trace",
"5 ng/L") is treated as absent rather than partially parsed.
"""
import re
from typing import Any, Optional
import numpy as np
import pandas as pd

INTEGER_PATTERN = re.compile(r"[0-9]+")
DECIMAL_PATTERN = re.compile(r"[0-9]+(?:\.[0-9]+)?")


def result_format(allow_decimal: bool = True) -> re.Pattern:
    """Return the accepted whole-field format."""
    return DECIMAL_PATTERN if allow_decimal else INTEGER_PATTERN


def validate_format(value: Any, allow_decimal: bool = True) -> Optional[float]:
    """Validate a raw result value and parse it.

    Args:
        value: Raw result as stored in the source table
        allow_decimal: Accept decimal values, otherwise integers only

    Returns:
        Parsed float, or None when the value does not match the format
    """
    if value is None:
        return None
    if isinstance(value, float) and pd.isna(value):
        return None

    text = str(value).strip()
    if not result_format(allow_decimal).fullmatch(text):
        return None
    return float(text)


def parse_numeric_results(values: pd.Series, allow_decimal: bool = True) -> pd.Series:
    """Vectorized validate-then-parse.

    Args:
        values: Raw result column
        allow_decimal: Accept decimal values, otherwise integers only

    Returns:
        Float Series aligned with the input, NaN where the format is rejected
    """
    text = values.astype("string").str.strip()
    valid = text.str.fullmatch(result_format(allow_decimal).pattern).fillna(False).astype(bool)
    parsed = pd.Series(np.nan, index=values.index, dtype="float64")
    parsed[valid] = text[valid].astype("float64")
    return parsed
