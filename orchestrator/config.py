"""
Evaluation configuration: scenarios, audit settings and run parameters.

Everything here is immutable. ``default_config()`` builds the in-source
Baseline vs MRAH suite; ``load_suite()`` builds the same thing from a suite YAML.
"""

from dataclasses import dataclass, replace
from pathlib import Path
from typing import Dict, Any, Optional, Tuple
from urllib.parse import urlsplit

import yaml

NUM_RUNS = 5
PRODUCT_ID = "123"
RUN_DELAY_S = 0.5
DEBUG_PORT = 9222
WARMUP_TIMEOUT_MS = 30000
BASELINE_URL = "http://localhost:3000"
MRAH_URL = "http://localhost:3001"

# Extra wall-clock time a single audit may take beyond maxWaitForLoad
AUDIT_TIMEOUT_SLACK_S = 60

# Same values as Lighthouse's core/config/constants.js throttling presets
THROTTLING_PROFILES: Dict[str, Dict[str, float]] = {
    "mobileSlow4G": {
        "rttMs": 150,
        "throughputKbps": 1.6 * 1024,
        "requestLatencyMs": 150 * 3.75,
        "downloadThroughputKbps": 1.6 * 1024 * 0.9,
        "uploadThroughputKbps": 750 * 0.9,
        "cpuSlowdownMultiplier": 4,
    },
    "mobileRegular3G": {
        "rttMs": 300,
        "throughputKbps": 700,
        "requestLatencyMs": 300 * 3.75,
        "downloadThroughputKbps": 700 * 0.9,
        "uploadThroughputKbps": 700 * 0.9,
        "cpuSlowdownMultiplier": 4,
    },
    "desktopDense4G": {
        "rttMs": 40,
        "throughputKbps": 10 * 1024,
        "cpuSlowdownMultiplier": 1,
        "requestLatencyMs": 0,
        "downloadThroughputKbps": 0,
        "uploadThroughputKbps": 0,
    },
}

FORM_FACTORS = ("desktop", "mobile")
THROTTLING_METHODS = ("provided", "simulate")


class SuiteConfigError(ValueError):
    """Invalid suite file or configuration values"""


@dataclass(frozen=True)
class ScreenEmulation:
    mobile: bool
    width: int
    height: int
    device_scale_factor: float = 1

    def to_lighthouse(self) -> Dict[str, Any]:
        return {
            "mobile": self.mobile,
            "width": self.width,
            "height": self.height,
            "deviceScaleFactor": self.device_scale_factor,
            "disabled": False,
        }


@dataclass(frozen=True)
class AuditConfiguration:
    """Device, network and audit-filter settings for one Lighthouse run"""

    form_factor: str
    screen: ScreenEmulation
    throttling_method: str = "provided"
    throttling_profile: Optional[str] = None
    only_categories: Tuple[str, ...] = ("performance",)
    max_wait_for_fcp_ms: int = 30000
    max_wait_for_load_ms: int = 60000
    skip_audits: Tuple[str, ...] = ()

    def __post_init__(self):
        if self.form_factor not in FORM_FACTORS:
            raise SuiteConfigError(f"form_factor must be one of {FORM_FACTORS}, got {self.form_factor!r}")
        if self.throttling_method not in THROTTLING_METHODS:
            raise SuiteConfigError(
                f"throttling_method must be one of {THROTTLING_METHODS}, got {self.throttling_method!r}"
            )
        if self.throttling_profile is not None and self.throttling_profile not in THROTTLING_PROFILES:
            raise SuiteConfigError(f"Unknown throttling profile: {self.throttling_profile}")
        if self.max_wait_for_fcp_ms <= 0 or self.max_wait_for_load_ms <= 0:
            raise SuiteConfigError("max wait bounds must be positive")

    @property
    def invocation_timeout_s(self) -> float:
        return self.max_wait_for_load_ms / 1000 + AUDIT_TIMEOUT_SLACK_S

    def to_lighthouse_config(self) -> Dict[str, Any]:
        settings: Dict[str, Any] = {
            "formFactor": self.form_factor,
            "screenEmulation": self.screen.to_lighthouse(),
            "throttlingMethod": self.throttling_method,
            "onlyCategories": list(self.only_categories),
            "maxWaitForFcp": self.max_wait_for_fcp_ms,
            "maxWaitForLoad": self.max_wait_for_load_ms,
            "skipAudits": list(self.skip_audits),
        }
        if self.throttling_profile:
            settings["throttling"] = dict(THROTTLING_PROFILES[self.throttling_profile])
        return {"extends": "lighthouse:default", "settings": settings}


DESKTOP_FAST = AuditConfiguration(
    form_factor="desktop",
    screen=ScreenEmulation(mobile=False, width=1350, height=940, device_scale_factor=1),
    throttling_method="provided",
    max_wait_for_fcp_ms=30000,
    max_wait_for_load_ms=60000,
)

MOBILE_SLOW = AuditConfiguration(
    form_factor="mobile",
    screen=ScreenEmulation(mobile=True, width=360, height=640, device_scale_factor=2),
    throttling_method="simulate",
    throttling_profile="mobileSlow4G",
    max_wait_for_fcp_ms=45000,
    max_wait_for_load_ms=90000,
)

BUILTIN_PROFILES: Dict[str, AuditConfiguration] = {
    "desktop_fast": DESKTOP_FAST,
    "mobile_slow": MOBILE_SLOW,
}


@dataclass(frozen=True)
class Scenario:
    name: str
    target_url: str
    audit_configuration: AuditConfiguration


@dataclass(frozen=True)
class EvaluationConfig:
    scenarios: Tuple[Scenario, ...]
    name: str = "hydration_comparison"
    runs: int = NUM_RUNS
    run_delay_s: float = RUN_DELAY_S
    output_dir: Path = Path("results")
    headless: bool = True
    debug_port: int = DEBUG_PORT
    warmup_timeout_ms: int = WARMUP_TIMEOUT_MS
    warmup_urls: Tuple[str, ...] = ()
    lighthouse_binary: str = "lighthouse"
    save_raw: bool = False

    def __post_init__(self):
        if not self.scenarios:
            raise SuiteConfigError("At least one scenario is required")
        if self.runs < 1:
            raise SuiteConfigError(f"runs must be >= 1, got {self.runs}")
        names = [s.name for s in self.scenarios]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise SuiteConfigError(f"Duplicate scenario names: {', '.join(duplicates)}")

    def targets(self) -> Tuple[str, ...]:
        """Base URLs to warm up, in scenario order"""
        if self.warmup_urls:
            return self.warmup_urls
        seen = []
        for scenario in self.scenarios:
            parts = urlsplit(scenario.target_url)
            base = f"{parts.scheme}://{parts.netloc}/"
            if base not in seen:
                seen.append(base)
        return tuple(seen)

    def with_overrides(self, **changes) -> "EvaluationConfig":
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)


def default_scenarios(product_id: str = PRODUCT_ID) -> Tuple[Scenario, ...]:
    path = f"/products/{product_id}"
    return (
        Scenario("Baseline - Desktop Fast Network", BASELINE_URL + path, DESKTOP_FAST),
        Scenario("Baseline - Mobile Slow 3G", BASELINE_URL + path, MOBILE_SLOW),
        Scenario("MRAH - Desktop Fast Network", MRAH_URL + path, DESKTOP_FAST),
        Scenario("MRAH - Mobile Slow 3G", MRAH_URL + path, MOBILE_SLOW),
    )


def default_config(product_id: str = PRODUCT_ID, **overrides) -> EvaluationConfig:
    """The Baseline vs MRAH suite: two apps x desktop/mobile"""
    return EvaluationConfig(scenarios=default_scenarios(product_id)).with_overrides(**overrides)


def _tuple(value) -> Tuple[str, ...]:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def audit_from_dict(raw: Dict[str, Any], base: Optional[AuditConfiguration] = None) -> AuditConfiguration:
    """Build an AuditConfiguration from suite settings, optionally on top of a base profile"""
    if not isinstance(raw, dict):
        raise SuiteConfigError(f"Audit settings must be a mapping, got {type(raw).__name__}")

    screen = base.screen if base else None
    if "screen" in raw:
        s = raw["screen"] or {}
        try:
            screen = ScreenEmulation(
                mobile=bool(s.get("mobile", False)),
                width=int(s["width"]),
                height=int(s["height"]),
                device_scale_factor=float(s.get("device_scale_factor", 1)),
            )
        except (KeyError, TypeError, AttributeError, ValueError) as e:
            raise SuiteConfigError(f"Invalid screen emulation {s!r}: {e}") from e
    form_factor = raw.get("form_factor", base.form_factor if base else None)
    if screen is None:
        mobile = form_factor == "mobile"
        screen = MOBILE_SLOW.screen if mobile else DESKTOP_FAST.screen

    values: Dict[str, Any] = {
        "form_factor": form_factor,
        "screen": screen,
    }
    for key in ("throttling_method", "throttling_profile", "max_wait_for_fcp_ms", "max_wait_for_load_ms"):
        if key in raw:
            values[key] = raw[key]
        elif base is not None:
            values[key] = getattr(base, key)
    for key in ("only_categories", "skip_audits"):
        if key in raw:
            values[key] = _tuple(raw[key])
        elif base is not None:
            values[key] = getattr(base, key)
    return AuditConfiguration(**values)


def _section(cfg: Dict[str, Any], key: str, kind=dict):
    value = cfg.get(key)
    if value is None:
        return kind()
    if not isinstance(value, kind):
        raise SuiteConfigError(f"'{key}' must be a {'mapping' if kind is dict else 'list'}, got {value!r}")
    return value


def config_from_dict(cfg: Dict[str, Any], default_name: str = "suite") -> EvaluationConfig:
    """Build an EvaluationConfig from a parsed suite mapping"""
    if not isinstance(cfg, dict):
        raise SuiteConfigError("Suite must be a mapping")

    product_id = str(cfg.get("product_id", PRODUCT_ID))

    profiles: Dict[str, AuditConfiguration] = dict(BUILTIN_PROFILES)
    for name, raw in _section(cfg, "profiles").items():
        base = None
        if isinstance(raw, dict) and "extends" in raw:
            raw = dict(raw)
            parent = raw.pop("extends")
            if parent not in profiles:
                raise SuiteConfigError(f"Profile {name!r} extends unknown profile {parent!r}")
            base = profiles[parent]
        profiles[name] = audit_from_dict(raw, base)

    if cfg.get("scenarios") is None:
        scenarios = default_scenarios(product_id)
    else:
        scenarios = []
        for entry in _section(cfg, "scenarios", list):
            try:
                name = entry["name"]
                url = entry["url"]
            except (KeyError, TypeError) as e:
                raise SuiteConfigError(f"Scenario needs 'name' and 'url': {entry!r}") from e
            if not isinstance(url, str):
                raise SuiteConfigError(f"Scenario {name!r} url must be a string, got {url!r}")
            try:
                url = url.format(product_id=product_id)
            except (KeyError, IndexError, ValueError) as e:
                raise SuiteConfigError(f"Scenario {name!r} has a malformed url {url!r}: {e!r}") from e
            audit = entry.get("audit", "desktop_fast")
            if isinstance(audit, str):
                if audit not in profiles:
                    raise SuiteConfigError(f"Scenario {name!r} uses unknown profile {audit!r}")
                audit_cfg = profiles[audit]
            else:
                audit_cfg = audit_from_dict(audit)
            scenarios.append(Scenario(name, url, audit_cfg))

    run = _section(cfg, "run")
    browser = _section(cfg, "browser")
    warmup = _section(cfg, "warmup")
    lighthouse = _section(cfg, "lighthouse")

    try:
        values = dict(
            runs=int(run.get("runs", NUM_RUNS)),
            run_delay_s=float(run.get("delay_ms", RUN_DELAY_S * 1000)) / 1000,
            output_dir=Path(cfg.get("output_dir", "results")),
            debug_port=int(browser.get("debug_port", DEBUG_PORT)),
            warmup_timeout_ms=int(warmup.get("timeout_ms", WARMUP_TIMEOUT_MS)),
            warmup_urls=_tuple(warmup.get("urls")),
        )
    except (TypeError, ValueError) as e:
        raise SuiteConfigError(f"Invalid suite value: {e}") from e

    return EvaluationConfig(
        scenarios=tuple(scenarios),
        name=cfg.get("name", default_name),
        headless=bool(browser.get("headless", True)),
        lighthouse_binary=str(lighthouse.get("binary", "lighthouse")),
        save_raw=bool(cfg.get("save_raw", False)),
        **values,
    )


def load_suite(path: Path) -> EvaluationConfig:
    """Load a suite YAML into an EvaluationConfig"""
    with open(path) as f:
        try:
            cfg = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise SuiteConfigError(f"{path}: {e}") from e
    return config_from_dict(cfg or {}, default_name=Path(path).stem)
