"""Reporting modules."""

from .reporting import (
    ReportGenerator,
    create_simple_summary_report,
    export_csv,
    results_to_dataframe,
    stress_to_dataframe,
    tornado_to_dataframe,
)

__all__ = [
    'ReportGenerator', 'create_simple_summary_report', 'export_csv',
    'results_to_dataframe', 'stress_to_dataframe', 'tornado_to_dataframe',
]
