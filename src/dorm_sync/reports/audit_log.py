"""Run log persistence."""

from pathlib import Path
import itertools
import json
import logging

from ..models.run_log import RunLog
from ..utils.exceptions import AuditLogError

logger = logging.getLogger(__name__)


class AuditLogger:
    """Writes each RunLog to its own JSON file; existing files are never overwritten."""

    def __init__(self, log_dir: Path):
        self.log_dir = Path(log_dir)

    def write(self, run_log: RunLog) -> Path:
        """
        Persist a run log.

        Args:
            run_log: The finished run's log

        Returns:
            Path of the written file

        Raises:
            AuditLogError: If the log cannot be written
        """
        stamp = run_log.timestamp.strftime("%Y%m%dT%H%M%S%f")
        base = f"sync-{run_log.collection}-{stamp}"
        payload = json.dumps(run_log.to_dict(), ensure_ascii=False, indent=2, default=str)

        try:
            self.log_dir.mkdir(parents=True, exist_ok=True)
            for attempt in itertools.count():
                path = self.log_dir / (f"{base}-{attempt}.json" if attempt else f"{base}.json")
                try:
                    with open(path, "x", encoding="utf-8") as f:
                        f.write(payload)
                except FileExistsError:
                    continue
                logger.info(f"Run log saved to {path}")
                return path
        except OSError as e:
            raise AuditLogError(f"Cannot write run log in {self.log_dir}: {e}") from e
