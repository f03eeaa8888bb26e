import json
import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Dict

from colorama import Fore, Style, init

init(autoreset=True)


class SessionEventLogger:
    """Per-session event log.

    Prints component-prefixed, coloured lines to stdout and keeps every event
    in memory. When ``log_dir`` is given the accumulated log is written once,
    to ``<log_dir>/session_log_<id>.json``, when the final aggregate is set.
    """

    COLORS = {
        "Engine": Fore.CYAN,
        "Selector": Fore.GREEN,
        "Timing": Fore.YELLOW,
        "Scorer": Fore.MAGENTA,
        "Aggregator": Fore.BLUE,
        "Storage": Fore.RED,
        "System": Fore.WHITE
    }

    PREFIXES = {
        "Engine": "[LOG :: ENGINE]",
        "Selector": "[LOG :: SELECTOR]",
        "Timing": "[LOG :: TIMING]",
        "Scorer": "[LOG :: SCORER]",
        "Aggregator": "[LOG :: AGGREGATOR]",
        "Storage": "[LOG :: STORAGE]",
        "System": "[LOG :: SYSTEM]"
    }

    def __init__(self, session_id: str = "", log_dir: str | None = None):
        self.log_dir = Path(log_dir) if log_dir else None
        if self.log_dir is not None:
            self.log_dir.mkdir(parents=True, exist_ok=True)
        self.log_data: Dict[str, Any] = {}
        self.reset(session_id)
        self._setup_logger()

    def _setup_logger(self):
        logger = logging.getLogger("visa_interview.events")
        logger.setLevel(logging.INFO)
        if not logger.handlers:
            handler = logging.StreamHandler(sys.stdout)
            handler.setFormatter(logging.Formatter('%(message)s'))
            logger.addHandler(handler)
            logger.propagate = False
        self.logger = logger

    @property
    def log_file(self) -> Path | None:
        if self.log_dir is None:
            return None
        return self.log_dir / f"session_log_{self.log_data['session_id'] or 'anonymous'}.json"

    def log(self, component: str, message: str, data: Dict[str, Any] | None = None, level: int = logging.INFO):
        entry = {
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "component": component,
            "message": message,
            "data": data or {}
        }
        self.log_data["events"].append(entry)

        color = self.COLORS.get(component, Fore.WHITE)
        prefix = self.PREFIXES.get(component, f"[LOG :: {component.upper()}]")
        formatted_msg = f"{color}{prefix}{Style.RESET_ALL} {message}"
        if data:
            formatted_msg += f" | Data: {json.dumps(data, ensure_ascii=False, default=str)}"

        self.logger.log(level, formatted_msg)

    def warning(self, component: str, message: str, data: Dict[str, Any] | None = None):
        self.log(component, message, data, level=logging.WARNING)

    def log_state_transition(self, from_state: str, to_state: str, reason: str = ""):
        self.log("Engine", f"State transition: {from_state} -> {to_state}", {"reason": reason})

    def log_metric(self, metric_name: str, value: Any):
        metrics = self.log_data["metrics"]
        metrics.setdefault(metric_name, []).append({
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "value": value
        })

    def log_latency(self, latency_ms: float):
        self.log_metric("scorer_latency_ms", latency_ms)
        self.log("Scorer", f"[METRIC :: LATENCY] {latency_ms:.2f}ms")

    def _save_log(self):
        if self.log_file is None:
            return
        try:
            with open(self.log_file, 'w', encoding='utf-8') as f:
                json.dump(self.log_data, f, ensure_ascii=False, indent=2, default=str)
        except OSError as e:
            self.logger.warning(f"Error saving session log: {e}")

    def reset(self, session_id: str = ""):
        self.log_data = {
            "session_id": session_id,
            "timestamp": datetime.now(timezone.utc).isoformat(),
            "events": [],
            "metrics": {},
            "final_aggregate": None
        }

    def set_final_aggregate(self, aggregate: Dict[str, Any]):
        self.log_data["final_aggregate"] = aggregate
        self._save_log()
