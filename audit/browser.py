from playwright.sync_api import sync_playwright

from orchestrator.config import DEBUG_PORT


class PlaywrightBrowser:
    """Headless Chromium with a fixed remote debugging port, so Lighthouse can attach to it"""

    def __init__(self, playwright, browser, debug_port: int):
        self._playwright = playwright
        self._browser = browser
        self.debug_port = debug_port

    @classmethod
    def launch(cls, headless: bool = True, debug_port: int = DEBUG_PORT) -> "PlaywrightBrowser":
        playwright = sync_playwright().start()
        try:
            browser = playwright.chromium.launch(
                headless=headless,
                args=[f"--remote-debugging-port={debug_port}"],
            )
        except Exception:
            playwright.stop()
            raise
        return cls(playwright, browser, debug_port)

    def new_context(self):
        return self._browser.new_context()

    def close(self):
        try:
            self._browser.close()
        finally:
            self._playwright.stop()
