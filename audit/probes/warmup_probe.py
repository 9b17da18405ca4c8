from typing import Dict, Iterable

from playwright.sync_api import Error as PlaywrightError

from orchestrator import events as ev
from orchestrator.config import WARMUP_TIMEOUT_MS


class WarmupProbe:
    """Checks each target app answers before measuring it. Failures are only reported."""

    def __init__(self, events: ev.EventBus, timeout_ms: int = WARMUP_TIMEOUT_MS,
                 wait_until: str = "networkidle"):
        self.events = events
        self.timeout_ms = timeout_ms
        self.wait_until = wait_until

    def run(self, browser, urls: Iterable[str]) -> Dict[str, bool]:
        urls = list(urls)
        self.events.emit(ev.WARMUP_STARTED, urls=urls)

        status: Dict[str, bool] = {}
        context = browser.new_context()
        try:
            page = context.new_page()
            for url in urls:
                status[url] = self._probe(page, url)
        finally:
            context.close()

        self.events.emit(ev.WARMUP_COMPLETED, status=dict(status))
        return status

    def _probe(self, page, url: str) -> bool:
        try:
            page.goto(url, timeout=self.timeout_ms, wait_until=self.wait_until)
        except PlaywrightError as e:
            self.events.emit(ev.WARMUP_TARGET_FAILED, url=url, error=str(e))
            return False
        self.events.emit(ev.WARMUP_TARGET_READY, url=url)
        return True
