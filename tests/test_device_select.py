import pytest

from isbn_scan.orchestrator.contracts import CameraDevice
from isbn_scan.orchestrator.device_select import select_device
from isbn_scan.orchestrator.errors import NoCameraFound

FRONT = CameraDevice(id="cam-1", label="Front Camera")
BACK = CameraDevice(id="cam-2", label="Back Camera")


def test_back_camera_preferred():
    assert select_device([FRONT, BACK]) == BACK


def test_single_front_camera_is_used():
    assert select_device([FRONT]) == FRONT


def test_empty_list_raises_no_camera_found():
    with pytest.raises(NoCameraFound):
        select_device([])


@pytest.mark.parametrize("label", ["camera2 0, facing back", "REAR lens", "Environment-facing"])
def test_label_match_is_case_insensitive(label):
    other = CameraDevice(id="other", label=label)
    assert select_device([FRONT, other]) == other


def test_first_matching_device_wins():
    rear = CameraDevice(id="cam-3", label="Rear Wide")
    assert select_device([FRONT, BACK, rear]) == BACK


def test_no_match_falls_back_to_first():
    usb = CameraDevice(id="cam-9", label="USB2.0 HD UVC WebCam")
    assert select_device([usb, FRONT]) == usb


def test_explicit_device_id_overrides_heuristic():
    assert select_device([FRONT, BACK], preferred_id="cam-1") == FRONT


def test_unknown_device_id_falls_back_to_heuristic():
    assert select_device([FRONT, BACK], preferred_id="missing") == BACK
