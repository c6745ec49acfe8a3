"""
Scan an ISBN from the terminal.

Usage:
  python -m isbn_scan.scripts.scan_cli                  # live camera scan
  python -m isbn_scan.scripts.scan_cli --image cover.jpg  # vision fallback
  python -m isbn_scan.scripts.scan_cli --list           # show cameras

Adapters follow the same CAMERA_ADAPTER / VISION_ADAPTER env vars as the server.
"""
import argparse
import asyncio
import sys
from pathlib import Path

from isbn_scan.orchestrator.contracts import ScanResult
from isbn_scan.orchestrator.device_select import select_device
from isbn_scan.orchestrator.errors import ScanError


async def _camera_scan(orch, device_id: str | None, timeout: float | None) -> int:
    try:
        await orch.start_camera_scan(device_id=device_id)
    except ScanError as e:
        print(f"[ERROR] {e.code}: {e.message}")
        return 2
    print("Point the camera at the ISBN barcode (Ctrl+C to stop)...")
    try:
        result = await asyncio.wait_for(orch.wait_for_scan(), timeout)
    except (asyncio.TimeoutError, asyncio.CancelledError):
        result = None
    finally:
        await orch.cancel_scan()
    if result is None:
        print("No ISBN scanned.")
        return 1
    print(result.code)
    return 0


async def _list(camera) -> int:
    devices = await camera.list_devices()
    if not devices:
        print("No camera found.")
        return 2
    chosen = select_device(devices)
    for dev in devices:
        mark = "*" if dev.id == chosen.id else " "
        print(f" {mark} {dev.id:<16} {dev.label}")
    return 0


def main(argv=None) -> int:
    parser = argparse.ArgumentParser(description="Scan a book ISBN")
    parser.add_argument("--image", type=Path, help="recognize a still image with the vision model")
    parser.add_argument("--device", help="camera device id (see --list)")
    parser.add_argument("--list", action="store_true", help="list cameras and exit")
    parser.add_argument("--timeout", type=float, default=None, help="give up after N seconds")
    args = parser.parse_args(argv)

    # imported late so --help works without camera libraries configured
    from isbn_scan.services.api import orch, camera

    if args.list:
        return asyncio.run(_list(camera))

    if args.image:
        if not args.image.exists():
            print(f"[ERROR] {args.image} not found")
            return 2
        outcome = orch.recognize_image(args.image.read_bytes())
        if isinstance(outcome, ScanResult):
            print(outcome.code)
            return 0
        print(f"[ERROR] {outcome.error_code}: {outcome.message}" + (f" (raw: {outcome.raw!r})" if outcome.raw else ""))
        return 1

    try:
        return asyncio.run(_camera_scan(orch, args.device, args.timeout))
    except KeyboardInterrupt:
        return 130


if __name__ == "__main__":
    sys.exit(main())
