"""Excel export of a recorded path and its statistics."""

from __future__ import annotations

import logging
from os import PathLike
from pathlib import Path
from typing import Sequence

import pandas as pd
from openpyxl.styles import Border, Font, PatternFill, Side
from openpyxl.worksheet.worksheet import Worksheet

from .config import (
    EXCEL_AUTOSIZE_COLUMNS,
    EXCEL_AUTOSIZE_MAX_ROWS,
    EXCEL_AUTOSIZE_MAX_WIDTH,
    EXCEL_AUTOSIZE_MIN_WIDTH,
    EXCEL_AUTOSIZE_PADDING,
)
from .geo import geodesic_distance_m
from .models import SavedLocation
from .statistics import RouteStatistics, compute_statistics, statistics_summary

POINTS_SHEET = "Route Points"
STATISTICS_SHEET = "Route Statistics"
POINT_COLUMNS = [
    "#",
    "Title",
    "Address",
    "Latitude",
    "Longitude",
    "Timestamp",
    "Leg Distance (m)",
]
EXCEL_DATETIME_FORMAT = "yyyy-mm-dd hh:mm:ss"

HEADER_FONT = Font(bold=True)
HEADER_FILL = PatternFill(patternType="solid", fgColor="FFDDEBF7")
HEADER_BORDER = Border(
    left=Side(style="thin", color="000000"),
    right=Side(style="thin", color="000000"),
    top=Side(style="thin", color="000000"),
    bottom=Side(style="thin", color="000000"),
)

LOGGER = logging.getLogger(__name__)

PathInput = str | Path | PathLike[str]


def _excel_datetime(value):
    # Excel cannot store tz-aware datetimes; keep the wall-clock reading.
    if value is None:
        return None
    return value.replace(tzinfo=None)


def build_points_frame(path: Sequence[SavedLocation]) -> pd.DataFrame:
    """One row per waypoint in insertion order, with the leg from its predecessor."""

    rows = []
    previous = None
    for index, location in enumerate(path, start=1):
        leg = (
            round(geodesic_distance_m(previous.position, location.position), 1)
            if previous is not None
            else 0.0
        )
        rows.append(
            {
                "#": index,
                "Title": location.title,
                "Address": location.subtitle,
                "Latitude": location.latitude,
                "Longitude": location.longitude,
                "Timestamp": _excel_datetime(location.timestamp),
                "Leg Distance (m)": leg,
            }
        )
        previous = location
    return pd.DataFrame(rows, columns=POINT_COLUMNS)


def build_statistics_frame(statistics: RouteStatistics) -> pd.DataFrame:
    rows = [
        {"Metric": "Total Distance (m)", "Value": round(statistics.total_distance, 2)},
        {"Metric": "Total Duration (s)", "Value": round(statistics.total_duration, 2)},
        {"Metric": "Average Speed (m/s)", "Value": round(statistics.average_speed, 3)},
    ]
    for label, text in statistics_summary(statistics).items():
        rows.append({"Metric": label, "Value": text})
    return pd.DataFrame(rows, columns=["Metric", "Value"])


def _style_header(ws: Worksheet) -> None:
    for cell in ws[1]:
        cell.font = HEADER_FONT
        cell.fill = HEADER_FILL
        cell.border = HEADER_BORDER


def _autosize(ws: Worksheet) -> None:
    if not EXCEL_AUTOSIZE_COLUMNS:
        return
    try:
        if ws.max_row > EXCEL_AUTOSIZE_MAX_ROWS:
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
    except Exception as exc:  # pragma: no cover - autosize is best-effort
        LOGGER.debug("Autosize failed for sheet %s: %s", getattr(ws, "title", "?"), exc)


def write_route_workbook(
    output_path: PathInput,
    path: Sequence[SavedLocation],
    statistics: RouteStatistics | None = None,
) -> Path:
    """Write the waypoints and their statistics to an ``.xlsx`` workbook.

    Returns:
        The path of the written workbook.
    """

    target = Path(output_path)
    target.parent.mkdir(parents=True, exist_ok=True)
    stats = statistics if statistics is not None else compute_statistics(path)
    points_df = build_points_frame(path)
    stats_df = build_statistics_frame(stats)

    with pd.ExcelWriter(target, engine="openpyxl") as writer:
        points_df.to_excel(writer, sheet_name=POINTS_SHEET, index=False)
        stats_df.to_excel(writer, sheet_name=STATISTICS_SHEET, index=False)
        points_ws = writer.sheets[POINTS_SHEET]
        timestamp_col = POINT_COLUMNS.index("Timestamp") + 1
        for row in points_ws.iter_rows(min_row=2, min_col=timestamp_col, max_col=timestamp_col):
            for cell in row:
                cell.number_format = EXCEL_DATETIME_FORMAT
        for ws in (points_ws, writer.sheets[STATISTICS_SHEET]):
            _style_header(ws)
            _autosize(ws)

    LOGGER.info("Exported %d waypoints to %s", len(path), target)
    return target


__all__ = [
    "write_route_workbook",
    "build_points_frame",
    "build_statistics_frame",
    "POINTS_SHEET",
    "STATISTICS_SHEET",
]
