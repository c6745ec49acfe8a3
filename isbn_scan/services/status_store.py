import logging
import os
from dataclasses import dataclass, field
from typing import Optional, List
from isbn_scan.orchestrator.contracts import ScanResult, ScanFailure

# Every store line is mirrored to the console logger as well.
_logger = logging.getLogger("isbn_scan")
if not _logger.handlers:
    _handler = logging.StreamHandler()
    _handler.setFormatter(logging.Formatter("%(asctime)s [%(name)s] %(levelname)s: %(message)s", "%Y-%m-%d %H:%M:%S"))
    _logger.addHandler(_handler)
    _logger.setLevel(getattr(logging, os.getenv("LOG_LEVEL", "INFO").upper(), logging.INFO))
    _logger.propagate = False

@dataclass
class StatusStore:
    busy: bool = False
    scan_state: Optional[str] = None
    last_result: Optional[ScanResult] = None
    last_failure: Optional[ScanFailure] = None
    last_error: Optional[str] = None     # last fatal failure; cleared by the next attempt or result
    logs: List[str] = field(default_factory=list)

    def set_busy(self, v: bool):
        self.busy = v

    def log(self, msg: str):
        self.logs.append(msg)
        if len(self.logs) > 200:
            self.logs = self.logs[-200:]
        _logger.info(msg)
