"""
Audit engine boundary.

The harness only needs ``audit(url, configuration) -> LHR dict``. The real
engine shells out to the Lighthouse CLI and attaches it to the Chrome that
Playwright launched, through the remote debugging port.
"""

import json
import subprocess
import tempfile
from pathlib import Path
from typing import Dict, Any, List, Optional

from orchestrator.config import AuditConfiguration, DEBUG_PORT


class AuditError(RuntimeError):
    """An audit invocation produced no usable result"""


class AuditEngine:
    def audit(self, url: str, configuration: AuditConfiguration) -> Dict[str, Any]:
        raise NotImplementedError


def _tail(text: Optional[str], limit: int = 500) -> str:
    return (text or "").strip()[-limit:]


class LighthouseCLIEngine(AuditEngine):
    """Runs ``lighthouse`` against an already-running Chrome"""

    def __init__(self, port: int = DEBUG_PORT, binary: str = "lighthouse",
                 timeout_s: Optional[float] = None):
        self.port = port
        self.binary = binary
        self.timeout_s = timeout_s

    def command(self, url: str, config_path: Path) -> List[str]:
        return [
            self.binary,
            url,
            f"--port={self.port}",
            "--output=json",
            "--output-path=stdout",
            "--quiet",
            f"--config-path={config_path}",
        ]

    def audit(self, url: str, configuration: AuditConfiguration) -> Dict[str, Any]:
        timeout = self.timeout_s or configuration.invocation_timeout_s

        with tempfile.TemporaryDirectory(prefix="lighthouse-") as tmp:
            config_path = Path(tmp) / "config.json"
            config_path.write_text(json.dumps(configuration.to_lighthouse_config()))
            cmd = self.command(url, config_path)
            try:
                completed = subprocess.run(
                    cmd,
                    text=True,
                    stdout=subprocess.PIPE,
                    stderr=subprocess.PIPE,
                    check=False,
                    timeout=timeout,
                )
            except subprocess.TimeoutExpired as e:
                raise AuditError(f"Lighthouse timed out after {timeout:.0f}s") from e
            except OSError as e:
                raise AuditError(f"Could not run {self.binary}: {e}") from e

        if completed.returncode != 0:
            raise AuditError(
                f"Lighthouse exited with code {completed.returncode}: {_tail(completed.stderr)}"
            )

        try:
            lhr = json.loads(completed.stdout)
        except ValueError as e:
            raise AuditError(f"Lighthouse output is not JSON: {_tail(completed.stdout, 200)}") from e

        if not isinstance(lhr, dict) or not lhr:
            raise AuditError("Lighthouse returned an empty result")
        return lhr
