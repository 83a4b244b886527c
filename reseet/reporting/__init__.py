"""
Reporting: tax report rows, summaries and exports.
"""

from .tax_report import (
    REPORT_COLUMNS,
    TimeWindow,
    filter_by_time_window,
    report_filename,
    report_row,
    report_rows,
    report_summary,
    to_dataframe,
    window_cutoff,
    write_csv,
)

__all__ = [
    "REPORT_COLUMNS",
    "TimeWindow",
    "filter_by_time_window",
    "report_filename",
    "report_row",
    "report_rows",
    "report_summary",
    "to_dataframe",
    "window_cutoff",
    "write_csv",
]
