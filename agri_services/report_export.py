"""CSV export of a distribution report for the export collaborator."""

from __future__ import annotations

import csv
from typing import TextIO

from agri_engines.allocation import DistributionReport

CSV_COLUMNS = ("kind", "label", "quantity", "unit", "percentage", "amount", "currency")


def write_csv(report: DistributionReport, stream: TextIO) -> int:
    """Write the report rows with a header line; returns the row count."""
    writer = csv.DictWriter(stream, fieldnames=CSV_COLUMNS, lineterminator="\n")
    writer.writeheader()
    rows = report.rows()
    for row in rows:
        writer.writerow(row.as_dict())
    return len(rows)
