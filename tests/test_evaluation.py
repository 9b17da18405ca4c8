import json

import pytest

from audit.engine import AuditError
from conftest import FakeBrowser, StubEngine, make_lhr
from metrics.extract import METRIC_NAMES
from orchestrator import events as ev
from orchestrator.config import DESKTOP_FAST, MOBILE_SLOW, EvaluationConfig, Scenario
from orchestrator.evaluation import Evaluation, EvaluationState
from orchestrator.result_save import ResultStore


class Launcher:
    def __init__(self, browser=None, error=None):
        self.browser = browser
        self.error = error
        self.calls = []

    def __call__(self, headless, debug_port):
        self.calls.append((headless, debug_port))
        if self.error is not None:
            raise self.error
        return self.browser


def read_summary(cfg):
    with open(cfg.output_dir / "summary_results.json") as f:
        return json.load(f)


def two_scenarios(tmp_path, runs=2):
    return EvaluationConfig(
        scenarios=(
            Scenario("Baseline - Desktop Fast Network", "http://localhost:3000/products/123", DESKTOP_FAST),
            Scenario("MRAH - Mobile Slow 3G", "http://localhost:3001/products/123", MOBILE_SLOW),
        ),
        runs=runs,
        run_delay_s=0,
        output_dir=tmp_path / "results",
    )


def test_end_to_end_median_is_persisted(config, bus):
    browser = FakeBrowser()
    engine = StubEngine([make_lhr(fcp=v) for v in (100, 200, 300, 400, 500)])
    evaluation = Evaluation(config, engine=engine, launch_browser=Launcher(browser), events=bus,
                            sleep=lambda s: None)

    report = evaluation.run()

    summary = read_summary(config)
    assert summary == {"Baseline - Desktop Fast Network": report.summary()["Baseline - Desktop Fast Network"]}
    assert summary["Baseline - Desktop Fast Network"]["FCP"] == 300
    assert set(summary["Baseline - Desktop Fast Network"]) == set(METRIC_NAMES)
    assert report.ok
    assert browser.close_calls == 1
    assert evaluation.state is EvaluationState.DONE


def test_scenarios_run_in_order_with_one_browser(tmp_path, bus):
    cfg = two_scenarios(tmp_path)
    browser = FakeBrowser()
    launcher = Launcher(browser)
    engine = StubEngine([make_lhr()] * 4)

    report = Evaluation(cfg, engine=engine, launch_browser=launcher, events=bus, sleep=lambda s: None).run()

    assert launcher.calls == [(True, 9222)]
    assert [url for url, _ in engine.calls] == ["http://localhost:3000/products/123"] * 2 + \
        ["http://localhost:3001/products/123"] * 2
    assert list(report.results) == [s.name for s in cfg.scenarios]
    assert list(read_summary(cfg)) == [s.name for s in cfg.scenarios]
    # warmup hit both app roots once
    assert [v[0] for v in browser.page.visited] == ["http://localhost:3000/", "http://localhost:3001/"]
    assert browser.close_calls == 1


def test_state_history(config, bus):
    evaluation = Evaluation(config, engine=StubEngine([make_lhr()] * 5), launch_browser=Launcher(FakeBrowser()),
                            events=bus, sleep=lambda s: None)

    evaluation.run()

    assert evaluation.history == [
        EvaluationState.IDLE,
        EvaluationState.LAUNCHING,
        EvaluationState.WARMUP,
        EvaluationState.RUNNING,
        EvaluationState.CLOSING,
        EvaluationState.REPORTING,
        EvaluationState.DONE,
    ]
    assert evaluation.progress == (1, 1)


def test_launch_failure_still_writes_summary(config, bus):
    launcher = Launcher(error=RuntimeError("Executable doesn't exist"))
    engine = StubEngine([])
    evaluation = Evaluation(config, engine=engine, launch_browser=launcher, events=bus, sleep=lambda s: None)

    report = evaluation.run()

    assert read_summary(config) == {}
    assert report.error == "RuntimeError: Executable doesn't exist"
    assert not report.ok
    assert engine.calls == []
    kinds = [e.kind for e in bus.seen]
    assert ev.EVALUATION_FAILED in kinds
    assert ev.BROWSER_CLOSED not in kinds
    assert ev.SUMMARY_SAVED in kinds
    assert evaluation.history[-4:] == [
        EvaluationState.FAILED, EvaluationState.CLOSING, EvaluationState.REPORTING, EvaluationState.DONE,
    ]


def test_interrupt_still_closes_browser(tmp_path, bus):
    cfg = two_scenarios(tmp_path, runs=1)
    browser = FakeBrowser()

    class ExplodingEngine(StubEngine):
        def audit(self, url, configuration):
            if "3001" in url:
                raise KeyboardInterrupt
            return super().audit(url, configuration)

    evaluation = Evaluation(cfg, engine=ExplodingEngine([make_lhr(fcp=111)]), launch_browser=Launcher(browser),
                            events=bus, sleep=lambda s: None)

    # not an Exception: propagates, but the browser is still closed
    with pytest.raises(KeyboardInterrupt):
        evaluation.run()
    assert browser.close_calls == 1


def test_failure_mid_evaluation_keeps_partial_report(tmp_path, bus):
    cfg = two_scenarios(tmp_path, runs=1)
    browser = FakeBrowser()

    def break_second_scenario(event):
        if event.kind == ev.SCENARIO_STARTED and event["scenario"] == "MRAH - Mobile Slow 3G":
            raise RuntimeError("renderer crashed")

    bus.subscribe(break_second_scenario)
    engine = StubEngine([make_lhr(fcp=111), make_lhr(fcp=222)])
    evaluation = Evaluation(cfg, engine=engine, launch_browser=Launcher(browser), events=bus,
                            sleep=lambda s: None)

    report = evaluation.run()

    summary = read_summary(cfg)
    assert list(summary) == ["Baseline - Desktop Fast Network"]
    assert summary["Baseline - Desktop Fast Network"]["FCP"] == 111
    assert report.error == "RuntimeError: renderer crashed"
    assert not report.ok
    assert len(engine.calls) == 1
    assert browser.close_calls == 1
    assert evaluation.history[-4:] == [
        EvaluationState.FAILED, EvaluationState.CLOSING, EvaluationState.REPORTING, EvaluationState.DONE,
    ]


def test_warmup_context_failure_aborts_but_persists(tmp_path, bus):
    cfg = two_scenarios(tmp_path, runs=1)

    class BrokenBrowser(FakeBrowser):
        def new_context(self):
            raise RuntimeError("Target page, context or browser has been closed")

    browser = BrokenBrowser()
    report = Evaluation(cfg, engine=StubEngine([]), launch_browser=Launcher(browser), events=bus,
                        sleep=lambda s: None).run()

    assert report.results == {}
    assert browser.close_calls == 1
    assert read_summary(cfg) == {}


def test_unreachable_app_does_not_block_scenarios(config, bus):
    browser = FakeBrowser(failing={"http://localhost:3000/"})
    report = Evaluation(config, engine=StubEngine([make_lhr()] * 5), launch_browser=Launcher(browser),
                        events=bus, sleep=lambda s: None).run()

    assert report.results["Baseline - Desktop Fast Network"].runs_succeeded == 5
    assert any(e.kind == ev.WARMUP_TARGET_FAILED for e in bus.seen)


def test_scenario_without_successful_runs(config, bus):
    engine = StubEngine([AuditError("Lighthouse exited with code 1")] * 5)
    report = Evaluation(config, engine=engine, launch_browser=Launcher(FakeBrowser()), events=bus,
                        sleep=lambda s: None).run()

    assert report.error is None
    assert report.empty_scenarios == ["Baseline - Desktop Fast Network"]
    assert not report.ok
    assert read_summary(config)["Baseline - Desktop Fast Network"] == {name: 0 for name in METRIC_NAMES}


def test_run_details_file(config, bus):
    engine = StubEngine([make_lhr(), AuditError("timeout"), make_lhr(), make_lhr(), make_lhr()])
    Evaluation(config, engine=engine, launch_browser=Launcher(FakeBrowser()), events=bus,
               sleep=lambda s: None).run()

    with open(config.output_dir / "run_details.json") as f:
        details = json.load(f)
    scenario = details["scenarios"]["Baseline - Desktop Fast Network"]
    assert details["error"] is None
    assert scenario["runs_attempted"] == 5
    assert scenario["runs_succeeded"] == 4
    assert scenario["sample_counts"]["FCP"] == 4
    assert scenario["errors"] == ["run 2: timeout"]


def test_persistence_failure_is_reported(config, bus):
    class ReadOnlyStore:
        out = config.output_dir
        summary_path = config.output_dir / "summary_results.json"
        details_path = config.output_dir / "run_details.json"

        def prepare(self):
            pass

        def write_summary(self, summary):
            raise PermissionError("read-only file system")

        def write_details(self, details):
            raise PermissionError("read-only file system")

    report = Evaluation(config, engine=StubEngine([make_lhr()] * 5), launch_browser=Launcher(FakeBrowser()),
                        events=bus, store=ReadOnlyStore(), sleep=lambda s: None).run()

    assert report.ok
    failed = [e for e in bus.seen if e.kind == ev.SUMMARY_SAVE_FAILED]
    assert len(failed) == 1
    assert "read-only" in failed[0]["error"]
    assert ev.DETAILS_SAVE_FAILED in [e.kind for e in bus.seen]


def test_details_failure_does_not_hide_saved_summary(config, bus):
    class NoDetailsStore(ResultStore):
        def write_details(self, details):
            raise OSError("disk full")

    Evaluation(config, engine=StubEngine([make_lhr()] * 5), launch_browser=Launcher(FakeBrowser()),
               events=bus, store=NoDetailsStore(config.output_dir), sleep=lambda s: None).run()

    kinds = [e.kind for e in bus.seen]
    assert ev.SUMMARY_SAVED in kinds
    assert ev.SUMMARY_SAVE_FAILED not in kinds
    assert ev.DETAILS_SAVED not in kinds
    failed = [e for e in bus.seen if e.kind == ev.DETAILS_SAVE_FAILED]
    assert failed[0]["path"].endswith("run_details.json")
    assert read_summary(config)["Baseline - Desktop Fast Network"]["FCP"] == 1000.0


def test_browser_close_failure_is_reported(config, bus):
    class StuckBrowser(FakeBrowser):
        def close(self):
            super().close()
            raise RuntimeError("Browser.close: Connection closed")

    browser = StuckBrowser()
    Evaluation(config, engine=StubEngine([make_lhr()] * 5), launch_browser=Launcher(browser), events=bus,
               sleep=lambda s: None).run()

    assert browser.close_calls == 1
    assert any(e.kind == ev.BROWSER_CLOSE_FAILED for e in bus.seen)
    assert (config.output_dir / "summary_results.json").exists()
