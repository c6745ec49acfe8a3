from abc import ABC, abstractmethod
from typing import AsyncIterator, List

from isbn_scan.orchestrator.contracts import CameraDevice, DecodeEvent, StreamConfig


class StreamHandle(ABC):
    @abstractmethod
    def events(self) -> AsyncIterator[DecodeEvent]:
        """Yield decode events in arrival order until stopped."""
        ...

    @abstractmethod
    async def stop(self) -> None:
        """Stop decoding. Safe to call more than once."""
        ...

    @abstractmethod
    async def clear(self) -> None:
        """Release the device. Safe to call more than once."""
        ...


class CameraAdapter(ABC):
    @abstractmethod
    async def list_devices(self) -> List[CameraDevice]:
        ...

    @abstractmethod
    async def open_stream(self, device_id: str, config: StreamConfig) -> StreamHandle:
        """Open a continuous decode stream. Raises PermissionDenied."""
        ...

    @abstractmethod
    def capture_bytes(self) -> bytes | None:
        """Capture one frame. Returns JPEG bytes or None on failure."""
        ...
