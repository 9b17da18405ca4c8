from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List

EVALUATION_STARTED = "evaluation-started"
BROWSER_LAUNCHED = "browser-launched"
WARMUP_STARTED = "warmup-started"
WARMUP_TARGET_READY = "warmup-target-ready"
WARMUP_TARGET_FAILED = "warmup-target-failed"
WARMUP_COMPLETED = "warmup-completed"
SCENARIO_STARTED = "scenario-started"
RUN_STARTED = "run-started"
RUN_COMPLETED = "run-completed"
RUN_FAILED = "run-failed"
RAW_SAVE_FAILED = "raw-save-failed"
SCENARIO_COMPLETED = "scenario-completed"
EVALUATION_FAILED = "evaluation-failed"
BROWSER_CLOSED = "browser-closed"
BROWSER_CLOSE_FAILED = "browser-close-failed"
EVALUATION_COMPLETED = "evaluation-completed"
SUMMARY_SAVED = "summary-saved"
SUMMARY_SAVE_FAILED = "summary-save-failed"
DETAILS_SAVED = "details-saved"
DETAILS_SAVE_FAILED = "details-save-failed"


@dataclass
class Event:
    kind: str
    data: Dict[str, Any] = field(default_factory=dict)

    def __getitem__(self, key: str) -> Any:
        return self.data[key]


Subscriber = Callable[[Event], None]


class EventBus:
    """Fan-out of progress events to whoever renders or records them"""

    def __init__(self):
        self._subscribers: List[Subscriber] = []

    def subscribe(self, callback: Subscriber) -> Subscriber:
        self._subscribers.append(callback)
        return callback

    def emit(self, kind: str, **data: Any) -> Event:
        event = Event(kind, data)
        for callback in self._subscribers:
            callback(event)
        return event
