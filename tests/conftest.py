import os

# The service module wires adapters at import time; keep tests off real hardware/APIs.
os.environ["CAMERA_ADAPTER"] = "mock"
os.environ["VISION_ADAPTER"] = "mock"

import pytest

from isbn_scan.adapters.camera.mock_camera import MockCamera
from isbn_scan.adapters.vision.mock_vision import MockVision
from isbn_scan.orchestrator.state_machine import Orchestrator
from isbn_scan.services.status_store import StatusStore


@pytest.fixture
def status():
    return StatusStore()


@pytest.fixture
def camera(status):
    return MockCamera(status)


@pytest.fixture
def orch(status, camera):
    return Orchestrator(camera, MockVision(status), status, error_clear_s=0.05)
