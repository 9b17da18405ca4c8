import sys
from pathlib import Path

import pytest

# Ensure project root is on sys.path for `import audit.*`, `import orchestrator.*`
ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

from audit.engine import AuditEngine  # noqa: E402
from orchestrator.config import DESKTOP_FAST, EvaluationConfig, Scenario  # noqa: E402
from orchestrator.events import EventBus  # noqa: E402


def make_lhr(fcp=1000.0, lcp=2000.0, cls=0.05, tbt=150.0, tti=3000.0, script_sizes=(40000, 20000)):
    return {
        "audits": {
            "first-contentful-paint": {"numericValue": fcp},
            "largest-contentful-paint": {"numericValue": lcp},
            "cumulative-layout-shift": {"numericValue": cls},
            "total-blocking-time": {"numericValue": tbt},
            "interactive": {"numericValue": tti},
            "network-requests": {
                "details": {
                    "items": [{"resourceType": "Script", "transferSize": s} for s in script_sizes]
                    + [{"resourceType": "Document", "transferSize": 9000}]
                }
            },
        }
    }


class StubEngine(AuditEngine):
    """Returns queued results in order; exceptions in the queue are raised"""

    def __init__(self, results):
        self.results = list(results)
        self.calls = []

    def audit(self, url, configuration):
        self.calls.append((url, configuration))
        result = self.results.pop(0)
        if isinstance(result, Exception):
            raise result
        return result


class FakePage:
    def __init__(self, failing=()):
        self.failing = set(failing)
        self.visited = []

    def goto(self, url, timeout=None, wait_until=None):
        from playwright.sync_api import Error as PlaywrightError

        self.visited.append((url, timeout, wait_until))
        if url in self.failing:
            raise PlaywrightError(f"net::ERR_CONNECTION_REFUSED at {url}")


class FakeContext:
    def __init__(self, page):
        self.page = page
        self.closed = False

    def new_page(self):
        return self.page

    def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, failing=()):
        self.page = FakePage(failing)
        self.contexts = []
        self.close_calls = 0

    def new_context(self):
        context = FakeContext(self.page)
        self.contexts.append(context)
        return context

    def close(self):
        self.close_calls += 1


@pytest.fixture
def lhr():
    return make_lhr()


@pytest.fixture
def bus():
    """EventBus that also keeps every event in bus.seen"""
    bus = EventBus()
    bus.seen = []
    bus.subscribe(bus.seen.append)
    return bus


@pytest.fixture
def scenario():
    return Scenario("Baseline - Desktop Fast Network", "http://localhost:3000/products/123", DESKTOP_FAST)


@pytest.fixture
def config(tmp_path, scenario):
    return EvaluationConfig(scenarios=(scenario,), runs=5, run_delay_s=0, output_dir=tmp_path / "results")

