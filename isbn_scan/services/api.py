import base64
import binascii
import os
from pathlib import Path
from fastapi import FastAPI
from dotenv import load_dotenv
from isbn_scan.services.models import (
    ScanResultOut, CameraOut, CamerasResponse, ScanStartRequest, ScanStateResponse,
    CaptureFrameRequest, ScanTextRequest, ScanResponse, StatusResponse,
)
from isbn_scan.services.status_store import StatusStore
from isbn_scan.orchestrator import errors
from isbn_scan.orchestrator.contracts import ScanResult, ScanFailure
from isbn_scan.orchestrator.device_select import select_device
from isbn_scan.orchestrator.errors import ScanError
from isbn_scan.orchestrator.isbn import to_isbn13
from isbn_scan.orchestrator.state_machine import Orchestrator

load_dotenv(dotenv_path=Path(__file__).resolve().parents[1] / ".env", override=False)

app = FastAPI(title="isbn-scan service")

status = StatusStore()

# Camera adapter: CAMERA_ADAPTER = cv2 | mock  (default: cv2)
camera_adapter = os.getenv("CAMERA_ADAPTER", "cv2").lower()
if camera_adapter == "mock":
    from isbn_scan.adapters.camera.mock_camera import MockCamera
    camera = MockCamera(status)
else:
    from isbn_scan.adapters.camera.cv2_camera import CV2Camera
    camera = CV2Camera(status)
status.log(f"camera adapter: {type(camera).__name__}")

# Vision adapter: VISION_ADAPTER = gemini | claude | mock  (default: gemini)
_vision_adapter = os.getenv("VISION_ADAPTER", "gemini").lower()
if _vision_adapter == "claude":
    from isbn_scan.adapters.vision.claude_vision import ClaudeVision
    vision = ClaudeVision(status)
elif _vision_adapter == "mock":
    from isbn_scan.adapters.vision.mock_vision import MockVision
    vision = MockVision(status)
else:
    from isbn_scan.adapters.vision.gemini_vision import GeminiVision
    vision = GeminiVision(status)
status.log(f"vision adapter: {type(vision).__name__}")

orch = Orchestrator(
    camera=camera,
    vision=vision,
    status_store=status,
    preferred_device_id=os.getenv("CAMERA_DEVICE_ID") or None,
    error_clear_s=float(os.getenv("SCAN_ERROR_CLEAR_S", "3")),
)


def _result_out(r: ScanResult | None) -> ScanResultOut | None:
    if r is None:
        return None
    return ScanResultOut(code=r.code, source=r.source, checksum_ok=r.checksum_ok, isbn13=to_isbn13(r.code))


def _camera_out(dev) -> CameraOut | None:
    return CameraOut(id=dev.id, label=dev.label) if dev else None


def _scan_response(outcome) -> ScanResponse:
    if isinstance(outcome, ScanResult):
        return ScanResponse(ok=True, result=_result_out(outcome))
    return ScanResponse(ok=False, error_code=outcome.error_code, error=outcome.message, raw=outcome.raw)


def _state_response(error: ScanError | None = None) -> ScanStateResponse:
    snap = orch.scan_state()
    failure: ScanFailure | None = snap["failure"]
    code = error.code if error else (failure.error_code if failure else None)
    msg = error.message if error else (failure.message if failure else None)
    return ScanStateResponse(
        ok=code is None,
        state=snap["state"],
        device=_camera_out(snap["device"]),
        last_error=snap["last_error"],
        result=_result_out(snap["result"]),
        error_code=code,
        error=msg,
    )


@app.get("/status", response_model=StatusResponse)
def get_status():
    return StatusResponse(
        busy=status.busy,
        scan_state=status.scan_state,
        last_result=_result_out(status.last_result),
        last_error=orch.scan_state()["last_error"] or status.last_error,
        logs=status.logs,
    )


@app.get("/health")
def health():
    """Report which adapters are wired and whether the vision service is configured."""
    return {
        "api": True,
        "camera_adapter": type(camera).__name__,
        "vision_adapter": type(vision).__name__,
        "vision_ready": vision.ready,
        "scanning": orch.scanning,
    }


@app.get("/cameras", response_model=CamerasResponse)
async def list_cameras():
    devices = await camera.list_devices()
    try:
        selected = select_device(devices, orch.preferred_device_id)
    except ScanError as e:
        return CamerasResponse(ok=False, error_code=e.code, error=e.message)
    return CamerasResponse(ok=True, devices=[_camera_out(d) for d in devices], selected=_camera_out(selected))


@app.post("/scan/start", response_model=ScanStateResponse)
async def scan_start(req: ScanStartRequest | None = None):
    """Open the camera and start decoding in the background.

    Returns once the stream is running; poll GET /scan for the result.
    No camera or denied permission comes back as ok=false right away.
    """
    device_id = req.device_id if req else None
    try:
        await orch.start_camera_scan(device_id=device_id)
    except ScanError as e:
        status.log(f"SCAN_START failed: {e.code}")
        return _state_response(error=e)
    return _state_response()


@app.post("/scan/cancel", response_model=ScanStateResponse)
async def scan_cancel():
    await orch.cancel_scan()
    return _state_response()


@app.get("/scan", response_model=ScanStateResponse)
def scan_state():
    return _state_response()


@app.post("/scan/image", response_model=ScanResponse)
def scan_image(req: CaptureFrameRequest):
    """Vision fallback for a still image uploaded by the browser."""
    data = req.image
    if data.startswith("data:") and "," in data:
        data = data.split(",", 1)[1]
    try:
        image_bytes = base64.b64decode(data, validate=True)
    except (binascii.Error, ValueError) as e:
        status.log(f"SCAN_IMAGE decode error: {e}")
        return ScanResponse(ok=False, error_code=errors.ERR_BAD_IMAGE, error="base64 decode failed")

    status.log(f"SCAN_IMAGE received ({len(image_bytes)} bytes)")
    return _scan_response(orch.recognize_image(image_bytes))


@app.post("/scan/snapshot", response_model=ScanResponse)
def scan_snapshot():
    """Grab one still from the server camera and send it to the vision model."""
    status.log("SCAN_SNAPSHOT")
    return _scan_response(orch.snapshot_and_recognize())


@app.post("/scan/text", response_model=ScanResponse)
def scan_text(req: ScanTextRequest):
    """Keyboard-wedge scanners and manual entry go through the same validator."""
    return _scan_response(orch.check_text(req.text))
