import html
from pathlib import Path
from typing import Dict, Any, Optional

import pandas as pd

from metrics.extract import METRIC_NAMES
from metrics.util import MetricUtils
from orchestrator.result_save import SUMMARY_FILE, DETAILS_FILE


def summary_frame(summary: Dict[str, Dict[str, float]]) -> pd.DataFrame:
    """Scenarios as rows, the six metrics as columns"""
    frame = pd.DataFrame.from_dict(summary, orient="index")
    return frame.reindex(columns=list(METRIC_NAMES))


def format_summary(summary: Dict[str, Dict[str, float]]) -> str:
    if not summary:
        return "(no results)"
    frame = summary_frame(summary)
    return frame.to_string(float_format=lambda v: f"{v:.3f}" if abs(v) < 1 else f"{v:.0f}")


class ReportBuilder:
    def __init__(self, results_dir: Path):
        self.results_dir = Path(results_dir)

    def build_report(self) -> str:
        """Build HTML report from a results directory"""
        summary = MetricUtils.load_metrics(self.results_dir / SUMMARY_FILE)

        details: Optional[Dict[str, Any]] = None
        details_file = self.results_dir / DETAILS_FILE
        if details_file.exists():
            details = MetricUtils.load_metrics(details_file)

        return self._generate_html(summary, details)

    def _generate_html(self, summary: Dict[str, Dict[str, float]],
                       details: Optional[Dict[str, Any]]) -> str:
        suite = (details or {}).get("suite") or self.results_dir.name
        html_doc = f"""
        <!DOCTYPE html>
        <html>
        <head>
            <title>Hydration Evaluation Report</title>
            <style>
                body {{ font-family: Arial, sans-serif; margin: 40px; }}
                table {{ border-collapse: collapse; margin: 20px 0; }}
                th, td {{ border: 1px solid #ddd; padding: 6px 12px; text-align: right; }}
                th {{ background: #f5f5f5; }}
                .error {{ color: #cc0000; }}
                h1 {{ color: #333; }}
                h2 {{ color: #666; }}
            </style>
        </head>
        <body>
            <h1>Hydration Evaluation Report: {html.escape(str(suite))}</h1>
            <p>Generated from: {html.escape(str(self.results_dir))}</p>
            <h2>Median results</h2>
            {self._render_summary(summary)}
        """

        if details:
            if details.get("error"):
                html_doc += f'<p class="error">Evaluation stopped early: {html.escape(details["error"])}</p>'
            html_doc += f"""
            <h2>Samples</h2>
            {self._render_samples(details.get("scenarios", {}))}
            """

        html_doc += """
        </body>
        </html>
        """
        return html_doc

    def _render_summary(self, summary: Dict[str, Dict[str, float]]) -> str:
        if not summary:
            return "<p>No metrics available</p>"
        return summary_frame(summary).to_html(float_format=lambda v: f"{v:.3f}")

    def _render_samples(self, scenarios: Dict[str, Any]) -> str:
        if not scenarios:
            return "<p>No runs recorded</p>"
        rows = {
            name: {
                "runs": f"{d.get('runs_succeeded', 0)}/{d.get('runs_attempted', 0)}",
                **{f"{m} measured": d.get("measured_counts", {}).get(m, 0) for m in METRIC_NAMES},
            }
            for name, d in scenarios.items()
        }
        return pd.DataFrame.from_dict(rows, orient="index").to_html()
