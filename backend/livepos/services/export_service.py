"""CSV rendering shared by the report and export commands."""

import csv
from datetime import datetime
from io import StringIO
from typing import Any, Iterable, Sequence


def rows_to_csv(headers: Sequence[str], rows: Iterable[Sequence[Any]]) -> str:
    """Render a header row plus data rows with standard CSV quoting."""
    output = StringIO()
    writer = csv.writer(output, quoting=csv.QUOTE_MINIMAL, lineterminator="\n")
    writer.writerow(headers)
    for row in rows:
        writer.writerow(["" if value is None else value for value in row])
    return output.getvalue()


def dated_filename(prefix: str, now: datetime) -> str:
    return f"{prefix}_{now.strftime('%Y-%m-%d')}.csv"


def money(value: float) -> str:
    return f"{value or 0:.2f}"


def yes_no(flag: bool) -> str:
    return "yes" if flag else "no"
