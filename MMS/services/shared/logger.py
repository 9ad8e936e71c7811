import json
import logging
import os
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, Optional

# Constants
LOG_DIR = os.path.abspath(
    os.getenv("MMS_LOGS_DIR", os.path.join(os.path.dirname(__file__), "../../logs"))
)


class JsonFormatter(logging.Formatter):
    """
    Formatter to output logs as JSON Lines, one event per line.
    """
    def format(self, record):
        log_record = {
            "timestamp": datetime.now(timezone.utc).isoformat().replace("+00:00", "Z"),
            "level": record.levelname,
            "component": getattr(record, "component", "unknown"),
            "request_id": getattr(record, "request_id", "unknown"),
            "event": getattr(record, "event", record.getMessage()),
            "payload": getattr(record, "payload", {})
        }
        return json.dumps(log_record, default=str)


class EventLogger:
    def __init__(self, component_name: str, request_id: Optional[str] = None):
        self.component = component_name
        self.request_id = request_id or str(uuid.uuid4())
        self.logger = logging.getLogger(f"MMS.{component_name}")
        self.logger.setLevel(logging.INFO)

        # Handlers are shared by every EventLogger of the same component
        if not self.logger.handlers:
            os.makedirs(LOG_DIR, exist_ok=True)

            # File handler: writes to MMS/logs/<component>.jsonl
            log_file = os.path.join(LOG_DIR, f"{component_name}.jsonl")
            file_handler = logging.FileHandler(log_file)
            file_handler.setFormatter(JsonFormatter())
            self.logger.addHandler(file_handler)

            stream_handler = logging.StreamHandler()
            stream_handler.setFormatter(JsonFormatter())
            self.logger.addHandler(stream_handler)

    def log(self, event: str, payload: Dict[str, Any] = None, level: int = logging.INFO):
        """
        Log a specific search event.

        :param event: The name of the event (e.g., 'sites_loaded', 'site_completed')
        :param payload: Dictionary containing the specific data
        :param level: Standard logging level, INFO by default
        """
        if payload is None:
            payload = {}

        extra = {
            "component": self.component,
            "request_id": self.request_id,
            "event": event,
            "payload": payload
        }

        self.logger.log(level, event, extra=extra)

        for handler in self.logger.handlers:
            handler.flush()

    def child(self, request_id: Optional[str] = None) -> "EventLogger":
        """Return a logger for the same component bound to a new request id."""
        return EventLogger(self.component, request_id=request_id)
