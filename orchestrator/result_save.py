from pathlib import Path
from typing import Dict, Any
import json
import re

from metrics.util import MetricUtils

SUMMARY_FILE = "summary_results.json"
DETAILS_FILE = "run_details.json"


def slugify(name: str) -> str:
    return re.sub(r'[^a-z0-9]+', '_', name.lower()).strip('_')


class ResultStore:
    """Files under the results directory. The summary is overwritten on every evaluation."""

    def __init__(self, out_dir: Path, save_raw: bool = False):
        self.out = Path(out_dir)
        self.save_raw = save_raw

    @property
    def summary_path(self) -> Path:
        return self.out / SUMMARY_FILE

    @property
    def details_path(self) -> Path:
        return self.out / DETAILS_FILE

    def prepare(self):
        self.out.mkdir(parents=True, exist_ok=True)
        if self.save_raw:
            (self.out / "raw").mkdir(exist_ok=True)

    def write_raw(self, scenario_name: str, run_index: int, lhr: Dict[str, Any]):
        if not self.save_raw:
            return
        path = self.out / "raw" / f"{slugify(scenario_name)}_run_{run_index}.json"
        path.write_text(json.dumps(lhr, indent=2))

    def write_summary(self, summary: Dict[str, Dict[str, float]]) -> Path:
        MetricUtils.save_metrics(summary, self.summary_path)
        return self.summary_path

    def write_details(self, details: Dict[str, Any]) -> Path:
        MetricUtils.save_metrics(details, self.details_path)
        return self.details_path
