from pathlib import Path
import typer
from typing import Optional

from orchestrator import events as ev
from orchestrator.config import default_config, load_suite
from orchestrator.evaluation import Evaluation
from orchestrator.result_save import SUMMARY_FILE
from orchestrator.results_visual import ReportBuilder, format_summary
from metrics.util import MetricUtils

app = typer.Typer(help="Lighthouse evaluation of Baseline vs MRAH hydration")


class ConsoleReporter:
    """Renders evaluation events as console lines"""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose

    def __call__(self, event: ev.Event):
        handler = getattr(self, "on_" + event.kind.replace("-", "_"), None)
        if handler is not None:
            handler(event)

    def warn(self, message: str):
        typer.secho(message, fg=typer.colors.YELLOW, err=True)

    def error(self, message: str):
        typer.secho(message, fg=typer.colors.RED, err=True)

    def on_evaluation_started(self, e):
        typer.echo("Starting Lighthouse evaluation...")
        typer.echo(f"Results will be saved in: {e['output_dir']}")

    def on_browser_launched(self, e):
        typer.echo(f"Chrome launched via Playwright with debugging port: {e['port']}")

    def on_warmup_started(self, e):
        typer.echo("Warming up applications...")

    def on_warmup_target_ready(self, e):
        typer.echo(f"  {e['url']} is running")

    def on_warmup_target_failed(self, e):
        self.warn(f"  Could not connect to {e['url']}. Is the app running?")
        self.warn(f"    Error: {e['error']}")

    def on_warmup_completed(self, e):
        typer.echo("Warmup complete")

    def on_scenario_started(self, e):
        typer.echo(f"\n--- Running Scenario: {e['scenario']} ---")

    def on_run_started(self, e):
        typer.echo(f"  Run {e['run']}/{e['runs']} for {e['scenario']}...")

    def on_run_completed(self, e):
        m = e["metrics"]
        typer.echo(
            f"    Run {e['run']} Metrics: FCP={m['FCP']:.0f} TBT={m['TBT']:.0f} TTI={m['TTI']:.0f} "
            f"LCP={m['LCP']:.0f} CLS={m['CLS']:.3f} JS={m['ScriptBytes'] / 1024:.1f}kB"
        )
        if e["missing"] and self.verbose:
            self.warn(f"    Not reported, counted as 0: {', '.join(e['missing'])}")

    def on_run_failed(self, e):
        self.error(f"  ERROR during Lighthouse run {e['run']} for {e['scenario']}: {e['error']}")

    def on_scenario_completed(self, e):
        result = e["result"]
        typer.echo(f"  Median Results for {result.name} ({result.runs_succeeded}/{result.runs_attempted} runs):")
        for name, value in result.medians.items():
            typer.echo(f"    {name}: {value}")

    def on_evaluation_failed(self, e):
        self.error("\n--- EVALUATION FAILED ---")
        self.error(e["traceback"].rstrip())

    def on_browser_closed(self, e):
        typer.echo("\nBrowser closed.")

    def on_browser_close_failed(self, e):
        self.warn(f"\nBrowser did not close cleanly: {e['error']}")

    def on_evaluation_completed(self, e):
        typer.echo("\n--- Final Median Results Summary ---")
        typer.echo(format_summary(e["report"].summary()))

    def on_summary_saved(self, e):
        typer.echo(f"\nSummary results saved to: {e['path']}")

    def on_summary_save_failed(self, e):
        self.error(f"\nFailed to write summary results file {e['path']}: {e['error']}")

    def on_details_saved(self, e):
        if self.verbose:
            typer.echo(f"Run details saved to: {e['path']}")

    def on_details_save_failed(self, e):
        self.warn(f"Failed to write run details file {e['path']}: {e['error']}")

    def on_raw_save_failed(self, e):
        self.warn(f"    Could not save raw report of run {e['run']} for {e['scenario']}: {e['error']}")


def _load_config(suite: Optional[Path], **overrides):
    try:
        if suite is not None:
            return load_suite(suite).with_overrides(**overrides)
        return default_config(**overrides)
    except (OSError, ValueError) as e:
        typer.secho(f"Invalid suite: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=2)


@app.command()
def run(
    suite: Optional[Path] = typer.Option(None, help="Suite YAML; the built-in Baseline vs MRAH suite if omitted"),
    out: Optional[Path] = typer.Option(None, help="Results directory"),
    runs: Optional[int] = typer.Option(None, help="Lighthouse runs per scenario"),
    product_id: Optional[str] = typer.Option(None, help="Product page to audit (built-in suite only)"),
    save_raw: bool = typer.Option(False, "--save-raw", help="Keep every Lighthouse report under raw/"),
    verbose: bool = typer.Option(False, "--verbose", "-v"),
):
    """Audit every scenario and write summary_results.json"""
    overrides = dict(output_dir=out, runs=runs, save_raw=save_raw or None)
    if suite is None and product_id is not None:
        overrides["product_id"] = product_id
    config = _load_config(suite, **overrides)

    bus = ev.EventBus()
    bus.subscribe(ConsoleReporter(verbose=verbose))
    report = Evaluation(config, events=bus).run()

    typer.echo("\nEvaluation complete.")
    if not report.ok:
        for name in report.empty_scenarios:
            typer.secho(f"No successful runs for: {name}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)


@app.command()
def warmup(suite: Optional[Path] = typer.Option(None, help="Suite YAML")):
    """Only check that the target apps respond"""
    from playwright.sync_api import Error as PlaywrightError

    from audit.browser import PlaywrightBrowser
    from audit.probes.warmup_probe import WarmupProbe

    config = _load_config(suite)
    bus = ev.EventBus()
    bus.subscribe(ConsoleReporter())

    try:
        browser = PlaywrightBrowser.launch(headless=config.headless, debug_port=config.debug_port)
    except PlaywrightError as e:
        typer.secho(f"Could not launch Chromium: {e}", fg=typer.colors.RED, err=True)
        raise typer.Exit(code=1)
    try:
        status = WarmupProbe(bus, timeout_ms=config.warmup_timeout_ms).run(browser, config.targets())
    finally:
        browser.close()

    if not all(status.values()):
        raise typer.Exit(code=1)


@app.command()
def show(results_dir: Path = typer.Argument(Path("results"))):
    """Print the median table of a saved evaluation"""
    summary_file = results_dir / SUMMARY_FILE
    if not summary_file.exists():
        typer.echo(f"No {SUMMARY_FILE} in {results_dir}")
        raise typer.Exit(code=1)
    typer.echo(format_summary(MetricUtils.load_metrics(summary_file)))


@app.command()
def report(results_dir: Path = typer.Argument(Path("results")),
           out: Optional[Path] = typer.Option(None, help="HTML file, defaults to <results_dir>/report.html")):
    """Render an HTML report from a results directory"""
    if not (results_dir / SUMMARY_FILE).exists():
        typer.echo(f"No {SUMMARY_FILE} in {results_dir}")
        raise typer.Exit(code=1)
    out = out or results_dir / "report.html"
    out.write_text(ReportBuilder(results_dir).build_report())
    typer.echo(f"Report written to {out}")


@app.command("list")
def list_suites():
    """List available suites"""
    suites_dir = Path("suites")
    if suites_dir.exists():
        typer.echo("Suites:")
        for suite_file in sorted(suites_dir.glob("*.yaml")):
            typer.echo(f"  {suite_file.name}")
    else:
        typer.echo("No suites directory found")


if __name__ == "__main__":
    app()
