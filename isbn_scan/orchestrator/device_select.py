from typing import Optional, Sequence

from isbn_scan.orchestrator.contracts import CameraDevice
from isbn_scan.orchestrator.errors import NoCameraFound

# Labels that usually mean the camera faces away from the user.
BACK_CAMERA_HINTS = ("back", "rear", "environment")


def select_device(devices: Sequence[CameraDevice], preferred_id: Optional[str] = None) -> CameraDevice:
    """Pick the camera to scan with.

    An explicit preferred_id wins when it is present in the list. Otherwise the
    first device whose label mentions a back camera is used, then the first
    device. Label matching is best effort only.
    """
    if not devices:
        raise NoCameraFound("no camera devices enumerated")

    if preferred_id:
        for dev in devices:
            if dev.id == preferred_id:
                return dev

    for dev in devices:
        label = (dev.label or "").lower()
        if any(hint in label for hint in BACK_CAMERA_HINTS):
            return dev
    return devices[0]
