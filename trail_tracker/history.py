"""History report of finalized tracks (Excel or CSV)."""

from __future__ import annotations

import logging
from datetime import datetime
from os import PathLike
from pathlib import Path
from typing import Iterable

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .config import (
    EXCEL_AUTOSIZE_COLUMNS,
    EXCEL_AUTOSIZE_MAX_ROWS,
    EXCEL_AUTOSIZE_MAX_WIDTH,
    EXCEL_AUTOSIZE_MIN_WIDTH,
    EXCEL_AUTOSIZE_PADDING,
    HISTORY_COLUMN_ORDER,
)
from .models import TrackRecord
from .utils import to_utc_aware

LOGGER = logging.getLogger(__name__)

HISTORY_SHEET = "Track History"
EXCEL_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFD9E1F2")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)

PathInput = str | Path | PathLike[str]


def records_to_frame(records: Iterable[TrackRecord]) -> pd.DataFrame:
    """One row per record, newest first, columns in ``HISTORY_COLUMN_ORDER``.

    Times are converted to naive UTC so they can be written to Excel.
    """

    ordered = sorted(records, key=lambda r: (r.start_time, r.id), reverse=True)
    rows = []
    for record in ordered:
        stats = record.stats
        rows.append(
            {
                "Route": record.display_name,
                "Start": _naive_utc(record.start_time),
                "End": _naive_utc(record.end_time),
                "Duration": record.formatted_duration,
                "Distance (km)": round(stats.total_distance_km, 3),
                "Avg Speed (km/h)": round(stats.average_speed_kmh, 2),
                "Max Speed (km/h)": round(stats.max_speed_kmh, 2),
                "Elev Gain (m)": round(stats.total_elevation_gain_m, 1),
                "Min Elev (m)": stats.min_elevation_m,
                "Max Elev (m)": stats.max_elevation_m,
                "Points": len(record.points),
            }
        )
    return pd.DataFrame(rows, columns=HISTORY_COLUMN_ORDER)


def write_history(path: PathInput, records: Iterable[TrackRecord]) -> Path:
    """Write the history report to ``path``.

    ``.csv`` paths get a CSV file, everything else an Excel workbook (``.xlsx``
    is appended when the path has no suffix).
    """

    output = Path(path)
    if not output.suffix:
        output = output.with_suffix(".xlsx")
    output.parent.mkdir(parents=True, exist_ok=True)
    df = records_to_frame(records)
    if output.suffix.lower() == ".csv":
        df.to_csv(output, index=False)
    else:
        with pd.ExcelWriter(
            output, engine="openpyxl", datetime_format=EXCEL_DATETIME_FORMAT
        ) as writer:
            df.to_excel(writer, sheet_name=HISTORY_SHEET, index=False)
            ws = writer.sheets.get(HISTORY_SHEET)
            if ws is not None:
                _style_header_row(ws, 1, len(df.columns))
                _autosize(ws)
    LOGGER.info("History report written to %s (%d records)", output, len(df))
    return output


def _naive_utc(value: datetime) -> datetime:
    return to_utc_aware(value).replace(tzinfo=None)


def _style_header_row(ws: Worksheet, row_idx: int, column_count: int) -> None:
    for col_idx in range(1, column_count + 1):
        cell = ws.cell(row=row_idx, column=col_idx)
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


def _autosize(ws: Worksheet) -> None:
    if not EXCEL_AUTOSIZE_COLUMNS or ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
        return
    for col_cells in ws.columns:
        max_len = 0
        col_letter = getattr(col_cells[0], "column_letter", None)
        for cell in col_cells:
            if cell.value is None:
                continue
            max_len = max(max_len, len(str(cell.value)))
        width = min(
            EXCEL_AUTOSIZE_MAX_WIDTH,
            max(EXCEL_AUTOSIZE_MIN_WIDTH, max_len + EXCEL_AUTOSIZE_PADDING),
        )
        if col_letter:
            ws.column_dimensions[col_letter].width = width


__all__ = ["records_to_frame", "write_history"]
