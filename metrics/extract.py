from typing import Dict, List, Any, Optional

# Metric name -> Lighthouse audit id
METRIC_AUDITS = {
    "FCP": "first-contentful-paint",
    "LCP": "largest-contentful-paint",
    "CLS": "cumulative-layout-shift",
    "TBT": "total-blocking-time",
    "TTI": "interactive",
}

METRIC_NAMES = ("FCP", "LCP", "CLS", "TBT", "TTI", "ScriptBytes")


def _number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value


class LighthouseMetrics:
    """Pull the fixed set of performance signals out of a Lighthouse result (LHR)"""

    @staticmethod
    def _audits(lhr: Any) -> Dict[str, Any]:
        audits = lhr.get("audits") if isinstance(lhr, dict) else None
        return audits if isinstance(audits, dict) else {}

    @staticmethod
    def _items(audits: Dict[str, Any], audit_id: str) -> List[Dict[str, Any]]:
        audit = audits.get(audit_id)
        details = audit.get("details") if isinstance(audit, dict) else None
        items = details.get("items") if isinstance(details, dict) else None
        if not isinstance(items, list):
            return []
        return [item for item in items if isinstance(item, dict)]

    @staticmethod
    def numeric_value(audits: Dict[str, Any], audit_id: str) -> Optional[float]:
        """numericValue of one audit, or None when the audit or value is missing"""
        audit = audits.get(audit_id)
        if not isinstance(audit, dict):
            return None
        return _number(audit.get("numericValue"))

    @staticmethod
    def script_bytes(audits: Dict[str, Any]) -> Optional[float]:
        """Transferred JavaScript bytes.

        Sums the Script entries of ``network-requests``; when that yields
        nothing, falls back to the script row of the ``total-byte-weight``
        breakdown. None when neither source reports a size.
        """
        total = 0
        for req in LighthouseMetrics._items(audits, "network-requests"):
            if req.get("resourceType") == "Script":
                total += _number(req.get("transferSize")) or 0
        if total:
            return total

        for item in LighthouseMetrics._items(audits, "total-byte-weight"):
            if item.get("resourceType") in ("script", "Script"):
                return _number(item.get("totalBytes"))
        return None

    @staticmethod
    def measure(lhr: Any) -> Dict[str, Optional[float]]:
        """Metric values as reported, None where the LHR has no value"""
        audits = LighthouseMetrics._audits(lhr)
        measured = {
            name: LighthouseMetrics.numeric_value(audits, audit_id)
            for name, audit_id in METRIC_AUDITS.items()
        }
        measured["ScriptBytes"] = LighthouseMetrics.script_bytes(audits)
        return measured

    @staticmethod
    def extract(lhr: Any) -> Dict[str, float]:
        """RunSample with all six metrics; anything missing counts as 0"""
        measured = LighthouseMetrics.measure(lhr)
        return {name: measured[name] or 0 for name in METRIC_NAMES}

    @staticmethod
    def missing(lhr: Any) -> List[str]:
        """Metric names that extract() had to zero-fill"""
        measured = LighthouseMetrics.measure(lhr)
        return [name for name in METRIC_NAMES if measured[name] is None]
