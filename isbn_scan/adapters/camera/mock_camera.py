"""Mock camera: scripted devices and decode events for development and tests."""
import asyncio
from typing import AsyncIterator, Iterable, List, Optional

from isbn_scan.adapters.camera.base import CameraAdapter, StreamHandle
from isbn_scan.orchestrator.contracts import CameraDevice, DecodeEvent, StreamConfig
from isbn_scan.orchestrator.errors import PermissionDenied

DEFAULT_DEVICES = [
    CameraDevice(id="mock:front", label="Front Camera"),
    CameraDevice(id="mock:back", label="Back Camera"),
]

DEFAULT_EVENTS = [
    DecodeEvent("error", "NotFoundException: No MultiFormat Readers were able to detect the code."),
    DecodeEvent("decoded", "978-0-13-468599-1"),
]


class MockStream(StreamHandle):
    def __init__(self, status_store, device_id: str, events: List[DecodeEvent], interval_s: float):
        self.status = status_store
        self.device_id = device_id
        self._events = list(events)
        self._interval = interval_s
        self.stopped = False
        self.cleared = False
        self.stop_calls = 0
        self.clear_calls = 0

    async def events(self) -> AsyncIterator[DecodeEvent]:
        for ev in self._events:
            if self.stopped:
                return
            await asyncio.sleep(self._interval)
            if self.stopped:
                return
            yield ev
        # A real camera keeps polling until stopped.
        while not self.stopped:
            await asyncio.sleep(self._interval)

    async def stop(self) -> None:
        self.stop_calls += 1
        self.stopped = True

    async def clear(self) -> None:
        self.clear_calls += 1
        self.cleared = True


class MockCamera(CameraAdapter):
    def __init__(self, status_store, devices: Optional[Iterable[CameraDevice]] = None,
                 events: Optional[Iterable[DecodeEvent]] = None, deny: bool = False,
                 still: Optional[bytes] = None, interval_s: float = 0.01,
                 open_delay_s: float = 0.0):
        self.status = status_store
        self.devices = list(DEFAULT_DEVICES if devices is None else devices)
        self.script = list(DEFAULT_EVENTS if events is None else events)
        self.deny = deny
        self.still = still
        self.interval_s = interval_s
        self.open_delay_s = open_delay_s
        self.streams: List[MockStream] = []

    async def list_devices(self) -> List[CameraDevice]:
        return list(self.devices)

    async def open_stream(self, device_id: str, config: StreamConfig) -> MockStream:
        if self.open_delay_s:
            # stands in for the OS permission prompt
            await asyncio.sleep(self.open_delay_s)
        if self.deny:
            self.status.log(f"mock_camera: permission denied for {device_id}")
            raise PermissionDenied("camera permission denied")
        stream = MockStream(self.status, device_id, self.script, self.interval_s)
        self.streams.append(stream)
        self.status.log(f"mock_camera: streaming {device_id} at {config.fps}fps")
        return stream

    def open_streams(self) -> List[MockStream]:
        return [s for s in self.streams if not s.cleared]

    def capture_bytes(self) -> bytes | None:
        if self.still is None:
            self.status.log("mock_camera: no still image configured")
        return self.still
