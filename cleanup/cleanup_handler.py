import shutil
from config import TEMP_DIR, OUTPUT_DIR
from logger.backend_logger import backend_logger


class CleanupHandler:
    """Removes temporary upload folders and per-session outputs."""

    def cleanup_all_temp_dirs(self):
        """Cleans up all session temporary directories."""
        if not TEMP_DIR.exists():
            backend_logger.info("Temporary directory does not exist, no cleanup needed.")
            return
        try:
            # Remove all contents within TEMP_DIR but keep TEMP_DIR itself
            for item in TEMP_DIR.iterdir():
                if item.is_dir():
                    shutil.rmtree(item)
                else:
                    item.unlink()
            backend_logger.info("All temporary session directories cleaned.")
        except OSError as e:
            backend_logger.error(f"Error during full cleanup: {e}")

    def cleanup_session(self, session_id: str, include_output: bool = False) -> bool:
        """Clean up one session's upload folder (and optionally its results). Returns True if anything was removed."""
        removed = False
        targets = [TEMP_DIR / f"session_{session_id}"]
        if include_output:
            targets.append(OUTPUT_DIR / f"session_{session_id}")
        for session_dir in targets:
            if session_dir.exists():
                shutil.rmtree(session_dir)
                backend_logger.info(f"Removed {session_dir}")
                removed = True
        if not removed:
            backend_logger.warning(f"Nothing to clean up for session {session_id}.")
        return removed


cleanup_handler = CleanupHandler()
