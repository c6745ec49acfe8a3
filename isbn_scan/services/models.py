from pydantic import BaseModel
from typing import Literal, Optional

class ScanResultOut(BaseModel):
    code: str
    source: Literal["camera", "vision", "manual"]
    checksum_ok: bool = False
    isbn13: Optional[str] = None   # 978-form; None when the code carries a stray X

class CameraOut(BaseModel):
    id: str
    label: str

class CamerasResponse(BaseModel):
    ok: bool
    devices: list[CameraOut] = []
    selected: Optional[CameraOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

class ScanStartRequest(BaseModel):
    device_id: Optional[str] = None   # explicit user choice beats the label heuristic

class ScanStateResponse(BaseModel):
    ok: bool
    state: str
    device: Optional[CameraOut] = None
    last_error: Optional[str] = None    # transient, clears after a few seconds
    result: Optional[ScanResultOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None

class CaptureFrameRequest(BaseModel):
    image: str  # base64 JPEG/PNG, data: URL prefix allowed

class ScanTextRequest(BaseModel):
    text: str

class ScanResponse(BaseModel):
    ok: bool
    result: Optional[ScanResultOut] = None
    error_code: Optional[str] = None
    error: Optional[str] = None
    raw: Optional[str] = None           # model text when no code was found

class StatusResponse(BaseModel):
    busy: bool
    scan_state: Optional[str] = None
    last_result: Optional[ScanResultOut] = None
    last_error: Optional[str] = None
    logs: list[str]
