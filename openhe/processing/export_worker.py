"""
Delimited-table rendering for measurement and average tables.
"""

import csv
import math
import re
from dataclasses import dataclass
from pathlib import Path
from typing import Union

import numpy as np
import pandas as pd

ABSENT_MARKER = "N/A"
DECIMAL_PRECISION = 6

_TRAILING_ZEROS = re.compile(r"0+$")
_TRAILING_POINT = re.compile(r"\.$")


@dataclass(frozen=True)
class OutputLocale:
    """Field and decimal separators for written tables."""
    field_separator: str = ","
    decimal_separator: str = "."

    @property
    def is_plain(self) -> bool:
        """Comma fields with a dot decimal, written with full float precision."""
        return self.field_separator == "," and self.decimal_separator == "."

    @classmethod
    def from_config(cls, config) -> "OutputLocale":
        """Locale from ``use_semicolons`` / ``use_comma_for_decimals``.

        Decimal commas are only used together with semicolon separators.
        """
        if not config.use_semicolons:
            return cls.COMMA
        decimal = "," if config.use_comma_for_decimals else "."
        return cls(";", decimal)


# Format A and format B
OutputLocale.COMMA = OutputLocale(",", ".")
OutputLocale.SEMICOLON = OutputLocale(";", ",")


def format_number(value: float, locale: OutputLocale) -> str:
    """Render a float: full precision for plain tables, otherwise fixed
    precision with trailing zeros and point stripped."""
    if locale.is_plain:
        return repr(float(value))
    text = f"{value:.{DECIMAL_PRECISION}f}"
    if "." in text:
        text = _TRAILING_POINT.sub("", _TRAILING_ZEROS.sub("", text))
        text = text.replace(".", locale.decimal_separator)
    return text


def format_value(value, locale: OutputLocale = OutputLocale.COMMA) -> str:
    """Render one cell; None and NaN become the absent marker."""
    if value is None:
        return ABSENT_MARKER
    if isinstance(value, (bool, np.bool_)):
        return str(bool(value))
    if isinstance(value, (int, np.integer)):
        return str(int(value))
    if isinstance(value, (float, np.floating)):
        if math.isnan(value):
            return ABSENT_MARKER
        return format_number(float(value), locale)
    return str(value)


def _as_text(table: pd.DataFrame, locale: OutputLocale) -> pd.DataFrame:
    return pd.DataFrame(
        {col: [format_value(v, locale) for v in table[col].tolist()] for col in table.columns},
        columns=list(table.columns),
    )


def format_table(table: pd.DataFrame, locale: OutputLocale = OutputLocale.COMMA) -> str:
    """Render a table as delimited text.

    Fields containing the separator, a newline or a quote are quoted, with
    inner quotes doubled.
    """
    return _as_text(table, locale).to_csv(
        None,
        sep=locale.field_separator,
        index=False,
        quoting=csv.QUOTE_MINIMAL,
        quotechar='"',
        doublequote=True,
        lineterminator="\n",
    )


def write_table(table: pd.DataFrame, path: Union[str, Path],
                locale: OutputLocale = OutputLocale.COMMA) -> Path:
    """Write a table to ``path``. I/O errors propagate to the caller."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w", newline="") as f:
        f.write(format_table(table, locale))
    print(f"[export_worker] Wrote {len(table)} rows to {path}")
    return path
