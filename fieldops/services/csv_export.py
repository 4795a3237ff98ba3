"""
Remediation CSV export.

One row per measurement with its room as context. Unit price and total are
left blank for completion in the accounting package.
"""

import asyncio
import csv
import io
import logging
from pathlib import Path
from typing import Optional

from fieldops.exceptions import BusinessRuleError
from fieldops.schemas.ticket import RemediationData

logger = logging.getLogger(__name__)

CSV_HEADERS = ["Room", "Description", "Quantity", "Unit Price", "Total"]
CSV_MEDIA_TYPE = "text/csv"


def csv_filename(project_id: str) -> str:
    return f"Remediation_Report_{project_id}.csv"


def _format_quantity(quantity: float) -> str:
    return str(int(quantity)) if float(quantity).is_integer() else str(quantity)


def remediation_to_csv(remediation: Optional[RemediationData]) -> str:
    if remediation is None:
        raise BusinessRuleError("No remediation data to export.")

    buffer = io.StringIO()
    writer = csv.writer(buffer, lineterminator="\r\n")
    writer.writerow(CSV_HEADERS)
    for room in remediation.rooms:
        for measurement in room.measurements:
            writer.writerow([
                room.name,
                measurement.description,
                _format_quantity(measurement.quantity),
                "",
                "",
            ])
    return buffer.getvalue()


async def export_remediation_csv(
    remediation: Optional[RemediationData],
    project_id: str,
    export_dir: str,
) -> Path:
    """Write the CSV to ``export_dir`` and return its path."""
    content = remediation_to_csv(remediation)
    path = Path(export_dir) / csv_filename(project_id)

    def _write():
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(content, encoding="utf-8")

    await asyncio.to_thread(_write)
    logger.info(f"Remediation CSV for {project_id} written to {path}")
    return path
