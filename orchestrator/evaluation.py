"""
Evaluation orchestrator.

Owns the one browser for the whole evaluation: launch, warm up the target
apps, run every scenario in order, and always close the browser and persist
whatever was collected, even after a failure.
"""

import enum
import time
import traceback
from typing import Dict, Any, Callable, List, Optional

from audit.browser import PlaywrightBrowser
from audit.engine import AuditEngine, LighthouseCLIEngine
from audit.probes.warmup_probe import WarmupProbe
from audit.runner import ScenarioRunner, ScenarioResult
from orchestrator import events as ev
from orchestrator.config import EvaluationConfig
from orchestrator.result_save import ResultStore


class EvaluationState(enum.Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    WARMUP = "warmup"
    RUNNING = "running"
    FAILED = "failed"
    CLOSING = "closing"
    REPORTING = "reporting"
    DONE = "done"


class EvaluationReport:
    """Scenario name -> ScenarioResult, in run order"""

    def __init__(self, suite: str = ""):
        self.suite = suite
        self.results: Dict[str, ScenarioResult] = {}
        self.error: Optional[str] = None

    def add(self, result: ScenarioResult):
        self.results[result.name] = result

    def summary(self) -> Dict[str, Dict[str, float]]:
        return {name: dict(result.medians) for name, result in self.results.items()}

    def details(self) -> Dict[str, Any]:
        return {
            "suite": self.suite,
            "error": self.error,
            "scenarios": {name: result.details() for name, result in self.results.items()},
        }

    @property
    def empty_scenarios(self) -> List[str]:
        """Scenarios where no run succeeded"""
        return [name for name, result in self.results.items() if result.runs_succeeded == 0]

    @property
    def ok(self) -> bool:
        return self.error is None and not self.empty_scenarios


class Evaluation:
    def __init__(self, config: EvaluationConfig, engine: Optional[AuditEngine] = None,
                 launch_browser: Optional[Callable[..., Any]] = None,
                 events: Optional[ev.EventBus] = None, store: Optional[ResultStore] = None,
                 sleep: Callable[[float], None] = time.sleep):
        self.config = config
        self.events = events or ev.EventBus()
        self.engine = engine or LighthouseCLIEngine(port=config.debug_port, binary=config.lighthouse_binary)
        self.launch_browser = launch_browser or PlaywrightBrowser.launch
        self.store = store or ResultStore(config.output_dir, save_raw=config.save_raw)
        self.sleep = sleep
        self.state = EvaluationState.IDLE
        self.history: List[EvaluationState] = [self.state]
        # (scenario i, of K) while running
        self.progress = (0, len(config.scenarios))

    def _enter(self, state: EvaluationState):
        self.state = state
        self.history.append(state)

    def run(self) -> EvaluationReport:
        cfg = self.config
        report = EvaluationReport(suite=cfg.name)
        browser = None

        self.events.emit(ev.EVALUATION_STARTED, suite=cfg.name, scenarios=len(cfg.scenarios),
                         runs=cfg.runs, output_dir=str(self.store.out))
        try:
            self.store.prepare()

            self._enter(EvaluationState.LAUNCHING)
            browser = self.launch_browser(headless=cfg.headless, debug_port=cfg.debug_port)
            self.events.emit(ev.BROWSER_LAUNCHED, port=cfg.debug_port)

            self._enter(EvaluationState.WARMUP)
            WarmupProbe(self.events, timeout_ms=cfg.warmup_timeout_ms).run(browser, cfg.targets())

            runner = ScenarioRunner(self.engine, self.events, runs=cfg.runs, delay_s=cfg.run_delay_s,
                                    store=self.store if cfg.save_raw else None, sleep=self.sleep)
            for i, scenario in enumerate(cfg.scenarios, 1):
                self.progress = (i, len(cfg.scenarios))
                self._enter(EvaluationState.RUNNING)
                report.add(runner.run(scenario))
        except Exception as e:
            report.error = f"{type(e).__name__}: {e}"
            self._enter(EvaluationState.FAILED)
            self.events.emit(ev.EVALUATION_FAILED, error=report.error, traceback=traceback.format_exc())
        finally:
            self._enter(EvaluationState.CLOSING)
            if browser is not None:
                self._close(browser)

        self._enter(EvaluationState.REPORTING)
        self.events.emit(ev.EVALUATION_COMPLETED, report=report)
        self._persist(report)
        self._enter(EvaluationState.DONE)
        return report

    def _close(self, browser):
        try:
            browser.close()
        except Exception as e:
            self.events.emit(ev.BROWSER_CLOSE_FAILED, error=str(e))
        else:
            self.events.emit(ev.BROWSER_CLOSED)

    def _persist(self, report: EvaluationReport):
        # the two files succeed or fail independently
        try:
            summary_path = self.store.write_summary(report.summary())
        except OSError as e:
            self.events.emit(ev.SUMMARY_SAVE_FAILED, path=str(self.store.summary_path), error=str(e))
        else:
            self.events.emit(ev.SUMMARY_SAVED, path=str(summary_path))

        try:
            details_path = self.store.write_details(report.details())
        except OSError as e:
            self.events.emit(ev.DETAILS_SAVE_FAILED, path=str(self.store.details_path), error=str(e))
        else:
            self.events.emit(ev.DETAILS_SAVED, path=str(details_path))
