"""
Logging and run incident tracking.

Every module logs through ``logging.getLogger(__name__)``, so all records
land under the ``sitesnap`` logger. Nothing is configured on import: a run
whose ``RunConfig.log_dir`` is set calls ``configure_logging`` to attach a
rotating run log and an errors-only log to that logger.

``ErrorTracker`` records what went wrong during one snapshot, keyed by the
pipeline stage that reported it.
"""

import logging
import logging.handlers
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional


PACKAGE_LOGGER = "sitesnap"

RUN_LOG = "sitesnap.log"
ERROR_LOG = "sitesnap_errors.log"

_FORMAT = logging.Formatter(
    '%(asctime)s | %(name)s | %(levelname)s | %(funcName)s:%(lineno)d | %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)


def configure_logging(log_dir: str, level: int = logging.DEBUG) -> logging.Logger:
    """
    Attach rotating file handlers for ``log_dir`` to the package logger.

    Calling it again for the same directory adds nothing, so consecutive
    runs sharing a log directory do not duplicate lines.

    Args:
        log_dir: Directory for sitesnap.log and sitesnap_errors.log
        level: Level of the run log (the errors log is always ERROR)

    Returns:
        The package logger
    """
    logger = logging.getLogger(PACKAGE_LOGGER)
    directory = Path(log_dir).absolute()
    directory.mkdir(parents=True, exist_ok=True)

    wanted = {directory / RUN_LOG: level, directory / ERROR_LOG: logging.ERROR}
    attached = {
        Path(h.baseFilename) for h in logger.handlers
        if isinstance(h, logging.handlers.RotatingFileHandler)
    }
    for path, handler_level in wanted.items():
        if path in attached:
            continue
        handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=5*1024*1024,  # 5MB
            backupCount=3,
            encoding='utf-8'
        )
        handler.setLevel(handler_level)
        handler.setFormatter(_FORMAT)
        logger.addHandler(handler)

    if logger.level == logging.NOTSET or logger.level > level:
        logger.setLevel(level)
    return logger


@dataclass
class Incident:
    """One degraded step or fatal failure of a run."""
    stage: str
    message: str
    fatal: bool = False
    url: Optional[str] = None
    error_type: Optional[str] = None


class ErrorTracker:
    """
    Collects the incidents of one snapshot run.

    Degraded stages report a warning and carry on; the controller reports
    the single fatal error that ends a run. Warnings are handed back to the
    caller on the RunResult.
    """

    def __init__(self, logger: logging.Logger):
        self.logger = logger
        self.incidents: List[Incident] = []

    @property
    def warnings(self) -> List[Incident]:
        return [i for i in self.incidents if not i.fatal]

    @property
    def errors(self) -> List[Incident]:
        return [i for i in self.incidents if i.fatal]

    def log_warning(self, message: str, context: str = 'run', url: Optional[str] = None) -> Incident:
        incident = Incident(stage=context, message=message, url=url)
        self.incidents.append(incident)
        self.logger.warning(f"[{context}] {message}")
        return incident

    def log_error(self, error: Exception, context: str = 'run', url: Optional[str] = None) -> Incident:
        """Record the failure that aborted the run, with its traceback at debug level."""
        incident = Incident(stage=context, message=str(error), fatal=True, url=url,
                            error_type=type(error).__name__)
        self.incidents.append(incident)
        where = f" while processing {url}" if url else ""
        self.logger.error(f"[{context}] {incident.error_type}{where}: {error}")
        self.logger.debug("Traceback of the aborted run", exc_info=error)
        return incident

    def warning_messages(self) -> List[str]:
        return [i.message for i in self.warnings]

    def count(self, context: str) -> int:
        """Number of warnings a pipeline stage reported."""
        return sum(1 for i in self.warnings if i.stage == context)

    def stage_counts(self) -> Dict[str, int]:
        counts: Dict[str, int] = {}
        for incident in self.warnings:
            counts[incident.stage] = counts.get(incident.stage, 0) + 1
        return counts
