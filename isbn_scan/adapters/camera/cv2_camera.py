"""
OpenCV webcam adapter with pyzbar barcode decoding.

Devices come from /dev/video* with labels read from sysfs; when that is not
available (macOS, Windows) indices 0..CAMERA_MAX_INDEX are tried instead.
Blocking OpenCV calls run in a worker thread so the event loop keeps polling.
"""
import asyncio
import os
from pathlib import Path
from typing import AsyncIterator, List

import cv2
from pyzbar.pyzbar import decode as zbar_decode

from isbn_scan.adapters.camera.base import CameraAdapter, StreamHandle
from isbn_scan.orchestrator.contracts import CameraDevice, DecodeEvent, StreamConfig
from isbn_scan.orchestrator.errors import PermissionDenied

SYSFS_ROOT = Path("/sys/class/video4linux")
DEV_ROOT = Path("/dev")

NOT_FOUND_MESSAGE = "NotFoundException: no barcode in frame"


def device_index(device_id: str) -> int:
    # "v4l2:video2" -> 2, "index:0" -> 0
    tail = device_id.split(":", 1)[-1]
    digits = "".join(ch for ch in tail if ch.isdigit())
    if not digits:
        raise ValueError(f"cannot derive capture index from {device_id!r}")
    return int(digits)


def decode_frame(frame) -> List[str]:
    gray = cv2.cvtColor(frame, cv2.COLOR_BGR2GRAY)
    texts = []
    for sym in zbar_decode(gray):
        data = (sym.data or b"").decode("utf-8", errors="ignore")
        if data:
            texts.append(data)
    return texts


class CV2Stream(StreamHandle):
    def __init__(self, status_store, device_id: str, cap, config: StreamConfig):
        self.status = status_store
        self.device_id = device_id
        self._cap = cap
        self._config = config
        self._stopped = False
        self._lock = asyncio.Lock()

    async def events(self) -> AsyncIterator[DecodeEvent]:
        interval = 1.0 / max(self._config.fps, 1)
        while not self._stopped:
            async with self._lock:
                if self._cap is None:
                    return
                ok, frame = await asyncio.to_thread(self._cap.read)
            if self._stopped:
                return
            if not ok or frame is None:
                yield DecodeEvent("error", "frame capture failed")
            else:
                texts = await asyncio.to_thread(decode_frame, frame)
                if not texts:
                    yield DecodeEvent("error", NOT_FOUND_MESSAGE)
                for text in texts:
                    yield DecodeEvent("decoded", text)
            await asyncio.sleep(interval)

    async def stop(self) -> None:
        self._stopped = True

    async def clear(self) -> None:
        async with self._lock:
            if self._cap is not None:
                await asyncio.to_thread(self._cap.release)
                self._cap = None
                self.status.log(f"cv2_camera: released {self.device_id}")


class CV2Camera(CameraAdapter):
    def __init__(self, status_store, max_index: int | None = None):
        self.status = status_store
        self._max_index = max_index if max_index is not None else int(os.getenv("CAMERA_MAX_INDEX", "4"))
        self._cap = None
        self._still_index = None

    async def list_devices(self) -> List[CameraDevice]:
        return await asyncio.to_thread(self._enumerate)

    def _enumerate(self) -> List[CameraDevice]:
        devices = []
        if DEV_ROOT.exists():
            for entry in sorted(DEV_ROOT.glob("video*")):
                if not entry.is_char_device():
                    continue
                label = entry.name
                name_file = SYSFS_ROOT / entry.name / "name"
                try:
                    label = name_file.read_text(encoding="utf-8").strip() or entry.name
                except OSError:
                    pass
                devices.append(CameraDevice(id=f"v4l2:{entry.name}", label=label))
        if devices:
            return devices

        for idx in range(self._max_index + 1):
            cap = cv2.VideoCapture(idx)
            try:
                if cap.isOpened():
                    devices.append(CameraDevice(id=f"index:{idx}", label=f"Camera {idx}"))
            finally:
                cap.release()
        self.status.log(f"cv2_camera: found {len(devices)} device(s) by index scan")
        return devices

    async def open_stream(self, device_id: str, config: StreamConfig) -> CV2Stream:
        idx = device_index(device_id)
        cap = await asyncio.to_thread(cv2.VideoCapture, idx)
        if not cap.isOpened():
            cap.release()
            self.status.log(f"cv2_camera: failed to open device {device_id}")
            raise PermissionDenied(f"cannot open camera {device_id}: access denied or device busy")
        cap.set(cv2.CAP_PROP_FPS, config.fps)
        self._still_index = idx
        self.status.log(f"cv2_camera: streaming {device_id} at {config.fps}fps")
        return CV2Stream(self.status, device_id, cap, config)

    def _open(self):
        if self._cap is None or not self._cap.isOpened():
            index = self._still_index if self._still_index is not None else 0
            self._cap = cv2.VideoCapture(index)
            if not self._cap.isOpened():
                self.status.log(f"cv2_camera: failed to open device {index}")

    def capture_bytes(self) -> bytes | None:
        self._open()
        if self._cap is None or not self._cap.isOpened():
            return None
        try:
            ret, frame = self._cap.read()
            if not ret or frame is None:
                self.status.log("cv2_camera: frame capture failed")
                return None
            ok, buf = cv2.imencode(".jpg", frame, [cv2.IMWRITE_JPEG_QUALITY, 85])
            if not ok:
                return None
            return bytes(buf)
        finally:
            self.release()

    def release(self):
        if self._cap and self._cap.isOpened():
            self._cap.release()
        self._cap = None
