import json
import logging
from datetime import datetime
from config import LOGS_DIR
from logger.backend_logger import backend_logger

# Session log levels as shown in the UI, and where they land in the backend log
BACKEND_LEVELS = {
    "info": logging.INFO,
    "success": logging.INFO,
    "warning": logging.WARNING,
    "error": logging.ERROR,
}


class FrontendLogBuffer:
    """
    Progress messages of one session, persisted as a JSON list so the UI can poll
    them through /logs/{session_id}. Every entry is mirrored to the backend log.
    """

    def __init__(self, session_id):
        self.session_id = session_id
        self.log_file = LOGS_DIR / f"session_{session_id}.json"
        self.logs = self._read()

    def add_log(self, message, level="info"):
        self.logs.append({
            "timestamp": datetime.now().isoformat(),
            "level": level,
            "message": message
        })
        backend_logger.log(BACKEND_LEVELS.get(level, logging.INFO), f"[session {self.session_id}] {message}")
        self._write()

    def get_logs(self):
        return self.logs

    def _read(self):
        # Earlier requests of the same session share the file
        if not self.log_file.exists():
            return []
        try:
            return json.loads(self.log_file.read_text(encoding="utf-8"))
        except (OSError, json.JSONDecodeError) as e:
            backend_logger.warning(f"Ignoring unreadable session log {self.log_file.name}: {e}")
            return []

    def _write(self):
        try:
            self.log_file.write_text(json.dumps(self.logs, indent=2), encoding="utf-8")
        except OSError as e:
            backend_logger.error(f"Could not save session log for {self.session_id}: {e}")
