"""Results reporting.

Turns run results, tornado rankings and stress reports into pandas tables,
CSV files and plain-text summaries.
"""

import pandas as pd
from typing import Dict, List, Any
from pathlib import Path

from ..core.data_models import METRIC_NAMES, RunResult
from ..core.sensitivity import TornadoReport
from ..core.stress import StressReport


def results_to_dataframe(result: RunResult) -> pd.DataFrame:
    """One row per option, one column per metric plus notices."""
    rows = []
    for option_result in result.results:
        row = {
            'option_id': option_result.option_id,
            'option_label': option_result.option_label,
            'horizon_months': option_result.horizon_months,
        }
        for name in METRIC_NAMES:
            row[name] = option_result.metric(name)
        row['ev_standard_error'] = option_result.ev_standard_error
        row['notices'] = ", ".join(n.code for n in option_result.notices)
        rows.append(row)
    return pd.DataFrame(rows)


def tornado_to_dataframe(report: TornadoReport) -> pd.DataFrame:
    """Tornado entries in rank order."""
    df = pd.DataFrame([entry.model_dump() for entry in report.entries])
    if df.empty:
        return df
    df.insert(0, 'rank', range(1, len(df) + 1))
    return df


def stress_to_dataframe(reports: Dict[str, StressReport]) -> pd.DataFrame:
    """Long table of baseline, stressed and delta values per scenario, option and metric."""
    rows = []
    for scenario, report in reports.items():
        for option in report.options:
            for name in METRIC_NAMES:
                rows.append({
                    'scenario': scenario,
                    'option_id': option.option_id,
                    'metric': name,
                    'baseline': option.baseline.get(name),
                    'stressed': option.stressed.get(name),
                    'delta': option.delta.get(name),
                })
    return pd.DataFrame(rows, columns=['scenario', 'option_id', 'metric', 'baseline', 'stressed', 'delta'])


def export_csv(df: pd.DataFrame, file_path: str) -> str:
    """Write a report table to CSV, creating parent directories."""
    path = Path(file_path)
    path.parent.mkdir(parents=True, exist_ok=True)
    df.to_csv(path, index=False)
    return str(path)


class ReportGenerator:
    """Builds structured summaries of a run."""

    def __init__(self, result: RunResult):
        self.result = result

    def generate_executive_summary(self) -> Dict[str, Any]:
        """Generate executive summary of results.

        Returns:
            Executive summary dictionary
        """
        ranked = sorted(self.result.results, key=lambda r: (-r.raroc, r.option_id))
        return {
            'run_overview': {
                'run_id': self.result.run_id,
                'seed': self.result.seed,
                'run_count': self.result.run_count,
                'horizon_months': self.result.horizon_months,
            },
            'ranking_by_raroc': [r.option_id for r in ranked],
            'options': results_to_dataframe(self.result).to_dict(orient='records'),
            'dependence': {
                'achieved_spearman': self.result.achieved_spearman,
                'repaired': self.result.dependence_fit.repaired if self.result.dependence_fit else False,
            },
            'key_insights': self._generate_key_insights(ranked),
        }

    def _generate_key_insights(self, ranked) -> List[str]:
        insights = []
        if ranked:
            best = ranked[0]
            insights.append(f"Highest RAROC: {best.option_label} ({best.raroc:.3f})")
        for r in ranked:
            if r.ev < 0:
                insights.append(f"{r.option_label} has a negative expected value ({r.ev:,.2f})")
            for notice in r.notices:
                insights.append(f"{r.option_label}: {notice.message}")
        if self.result.dependence_fit is not None and self.result.dependence_fit.repaired:
            insights.append(
                f"Dependence matrix repaired (Frobenius distance "
                f"{self.result.dependence_fit.repair_frobenius:.4f})"
            )
        return insights


def create_simple_summary_report(result: RunResult) -> str:
    """Create a simple text summary report.

    Args:
        result: Run result

    Returns:
        Formatted text report
    """
    report_lines = [
        f"Decision Risk Summary - {result.run_id[:16]}",
        "=" * 50,
        "",
        f"Seed: {result.seed}",
        f"Runs: {result.run_count:,}",
        f"Horizon: {result.horizon_months} months",
    ]
    if result.achieved_spearman is not None:
        report_lines.append(f"Achieved Spearman: {result.achieved_spearman:.3f}")

    for r in result.results:
        report_lines.extend([
            "",
            f"{r.option_label} ({r.option_id}):",
            f"  EV: {r.ev:,.2f} (SE {r.ev_standard_error:,.3f})",
            f"  VaR95: {r.var95:,.2f}",
            f"  CVaR95: {r.cvar95:,.2f}",
            f"  Economic Capital: {r.economic_capital:,.2f}",
            f"  RAROC: {r.raroc:,.4f}",
        ])
        if r.certainty_equivalent is not None:
            report_lines.append(f"  Certainty Equivalent: {r.certainty_equivalent:,.2f}")
        if r.tcor is not None:
            report_lines.append(f"  TCOR: {r.tcor:,.2f}")
        for notice in r.notices:
            report_lines.append(f"  Note: {notice.message}")

    if result.warnings:
        report_lines.extend(["", "Warnings:"])
        report_lines.extend(f"  - {w}" for w in result.warnings)

    return "\n".join(report_lines)
