import time
from dataclasses import dataclass, field
from typing import Dict, Any, Callable, List

from audit.engine import AuditEngine, AuditError
from metrics.extract import LighthouseMetrics, METRIC_NAMES
from metrics.util import MetricUtils
from orchestrator import events as ev
from orchestrator.config import Scenario, NUM_RUNS, RUN_DELAY_S


@dataclass(frozen=True)
class ScenarioResult:
    """Median of every metric over the successful runs of one scenario"""

    name: str
    medians: Dict[str, float]
    sample_counts: Dict[str, int]
    measured_counts: Dict[str, int]
    runs_attempted: int
    runs_succeeded: int
    errors: List[str] = field(default_factory=list)

    @property
    def runs_failed(self) -> int:
        return self.runs_attempted - self.runs_succeeded

    def details(self) -> Dict[str, Any]:
        return {
            "runs_attempted": self.runs_attempted,
            "runs_succeeded": self.runs_succeeded,
            "sample_counts": dict(self.sample_counts),
            "measured_counts": dict(self.measured_counts),
            "errors": list(self.errors),
        }


class ScenarioRunner:
    """Runs N sequential audits of one scenario against the shared browser"""

    def __init__(self, engine: AuditEngine, events: ev.EventBus, runs: int = NUM_RUNS,
                 delay_s: float = RUN_DELAY_S, store=None,
                 sleep: Callable[[float], None] = time.sleep):
        self.engine = engine
        self.events = events
        self.runs = runs
        self.delay_s = delay_s
        self.store = store
        self.sleep = sleep

    def run_once(self, scenario: Scenario, run_index: int) -> Dict[str, Any]:
        """One audit; returns the LHR or raises"""
        lhr = self.engine.audit(scenario.target_url, scenario.audit_configuration)
        if not lhr:
            raise AuditError("Audit engine returned no result")
        return lhr

    def _save_raw(self, scenario: Scenario, run_index: int, lhr: Dict[str, Any]):
        """Keep the full report; the sample counts either way"""
        if self.store is None:
            return
        try:
            self.store.write_raw(scenario.name, run_index, lhr)
        except OSError as e:
            self.events.emit(ev.RAW_SAVE_FAILED, scenario=scenario.name, run=run_index, error=str(e))

    def run(self, scenario: Scenario) -> ScenarioResult:
        self.events.emit(ev.SCENARIO_STARTED, scenario=scenario.name, url=scenario.target_url, runs=self.runs)

        buffers: Dict[str, List[float]] = {name: [] for name in METRIC_NAMES}
        measured = {name: 0 for name in METRIC_NAMES}
        errors: List[str] = []
        succeeded = 0

        for i in range(1, self.runs + 1):
            self.events.emit(ev.RUN_STARTED, scenario=scenario.name, run=i, runs=self.runs)
            t_start = time.time()
            try:
                lhr = self.run_once(scenario, i)
                sample = LighthouseMetrics.extract(lhr)
                missing = LighthouseMetrics.missing(lhr)
            except Exception as e:
                errors.append(f"run {i}: {e}")
                self.events.emit(ev.RUN_FAILED, scenario=scenario.name, run=i, runs=self.runs,
                                 error=str(e), error_type=type(e).__name__)
            else:
                for name in METRIC_NAMES:
                    buffers[name].append(sample[name])
                    if name not in missing:
                        measured[name] += 1
                succeeded += 1
                self.events.emit(ev.RUN_COMPLETED, scenario=scenario.name, run=i, runs=self.runs,
                                 metrics=sample, missing=missing, duration_s=time.time() - t_start)
                self._save_raw(scenario, i, lhr)

            # settle time between audits
            self.sleep(self.delay_s)

        result = ScenarioResult(
            name=scenario.name,
            medians=MetricUtils.aggregate_samples(buffers),
            sample_counts={name: len(values) for name, values in buffers.items()},
            measured_counts=measured,
            runs_attempted=self.runs,
            runs_succeeded=succeeded,
            errors=errors,
        )
        self.events.emit(ev.SCENARIO_COMPLETED, scenario=scenario.name, result=result)
        return result
