from dataclasses import dataclass
from typing import Optional, Literal

ScanSource = Literal["camera", "vision", "manual"]
EventKind = Literal["decoded", "error"]

@dataclass(frozen=True)
class CameraDevice:
    id: str                    # opaque platform id, e.g. "v4l2:video0"
    label: str                 # free text, only used for heuristic selection

@dataclass(frozen=True)
class StreamConfig:
    fps: int = 10
    box_width: int = 250
    box_height: int = 250
    aspect_ratio: float = 1.0

@dataclass(frozen=True)
class DecodeEvent:
    kind: EventKind
    text: str

@dataclass(frozen=True)
class CandidateCode:
    raw: str
    normalized: str
    valid: bool

@dataclass
class ScanResult:
    code: str                  # always length 10 or 13
    source: ScanSource
    checksum_ok: bool = False

@dataclass
class ScanFailure:
    error_code: str            # see orchestrator.errors
    message: str
    raw: Optional[str] = None  # model text kept for diagnostics
    fatal: bool = True
