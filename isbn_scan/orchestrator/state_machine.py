import asyncio
import contextlib
from typing import Callable, Optional

from isbn_scan.orchestrator import errors, states
from isbn_scan.orchestrator.contracts import CameraDevice, ScanFailure, ScanResult, StreamConfig
from isbn_scan.orchestrator.device_select import select_device
from isbn_scan.orchestrator.errors import ScanError, SessionBusy
from isbn_scan.orchestrator.isbn import checksum_ok, is_decoder_noise, make_candidate

INVALID_FORMAT_MESSAGE = "Invalid ISBN format. Please try again."
ERROR_CLEAR_S = 3.0


class ScanSession:
    """One camera scan attempt: owns exactly one stream from open to release.

    start() walks idle -> requesting -> scanning. Each decoded text goes
    through the ISBN normalizer; the first valid one fires on_success once and
    closes the session. close() may be called from any state, any number of
    times, and always attempts stop-then-clear on whatever stream is held.
    """

    def __init__(self, camera, status_store, *, preferred_device_id: Optional[str] = None,
                 config: Optional[StreamConfig] = None, error_clear_s: float = ERROR_CLEAR_S,
                 on_success: Optional[Callable[[ScanResult], None]] = None,
                 on_error: Optional[Callable[[ScanFailure], None]] = None,
                 on_warning: Optional[Callable[[str], None]] = None):
        self.camera = camera
        self.status = status_store
        self.preferred_device_id = preferred_device_id
        self.config = config or StreamConfig()
        self.error_clear_s = error_clear_s
        self.on_success = on_success
        self.on_error = on_error
        self.on_warning = on_warning

        self.state: states.ScanState = states.IDLE
        self.device: Optional[CameraDevice] = None
        self.result: Optional[ScanResult] = None
        self.failure: Optional[ScanFailure] = None
        self.error: Optional[ScanError] = None
        self.last_error: Optional[str] = None
        self.started = asyncio.Event()

        self._stream = None
        self._cancelled = False
        self._clear_timer: Optional[asyncio.TimerHandle] = None

    @property
    def has_open_stream(self) -> bool:
        return self._stream is not None

    def _transition(self, new: states.ScanState):
        if new not in states.TRANSITIONS[self.state]:
            raise RuntimeError(f"illegal scan transition {self.state} -> {new}")
        if new != self.state:
            self.status.log(f"scan_session: {self.state} -> {new}")
        self.state = new
        self.status.scan_state = new

    async def start(self) -> None:
        if self.state != states.IDLE:
            raise SessionBusy(f"scan session already {self.state}")
        self._transition(states.REQUESTING)
        try:
            devices = await self.camera.list_devices()
            if self._cancelled:
                return
            self.device = select_device(devices, self.preferred_device_id)
            self.status.log(f"scan_session: selected {self.device.id} ({self.device.label})")

            # may suspend indefinitely on the OS permission prompt
            stream = await self.camera.open_stream(self.device.id, self.config)
            self._stream = stream
            if self._cancelled:
                self.status.log("scan_session: stream opened after cancel, releasing")
                await self._release()
                return
            self._transition(states.SCANNING)
        except ScanError as e:
            self.error = e
            await self._fail(e.code, e.message)
            raise
        except Exception as e:
            self.error = ScanError(f"{type(e).__name__}: {e}")
            await self._fail(errors.ERR_UNKNOWN, self.error.message)
            raise self.error from e
        finally:
            self.started.set()

    async def run(self) -> Optional[ScanResult]:
        """Start, then consume decode events in order until success or close."""
        try:
            await self.start()
            if self.state != states.SCANNING:
                return self.result
            async with contextlib.aclosing(self._stream.events()) as events:
                async for ev in events:
                    if self.state != states.SCANNING:
                        break
                    if ev.kind == "decoded":
                        if await self.handle_decoded(ev.text) is not None:
                            break
                    else:
                        self.handle_decoder_error(ev.text)
            return self.result
        finally:
            await self.close()

    async def handle_decoded(self, text: str) -> Optional[ScanResult]:
        if self.state != states.SCANNING or self.result is not None:
            return None
        cand = make_candidate(text)
        if not cand.valid:
            self.status.log(f"scan_session: rejected '{text}' -> '{cand.normalized}' (len={len(cand.normalized)})")
            self._show_transient(INVALID_FORMAT_MESSAGE)
            self._emit_error(ScanFailure(errors.ERR_INVALID_FORMAT, INVALID_FORMAT_MESSAGE, raw=text, fatal=False))
            return None

        self.result = ScanResult(code=cand.normalized, source="camera", checksum_ok=checksum_ok(cand.normalized))
        self.status.log(f"scan_session: accepted {self.result.code}")
        if self.on_success is not None:
            self.on_success(self.result)
        await self.close()
        return self.result

    def handle_decoder_error(self, message: str):
        if is_decoder_noise(message):
            return
        self.status.log(f"scan_session: decoder warning: {message}")
        if self.on_warning is not None:
            self.on_warning(message)

    async def close(self) -> None:
        self._cancelled = True
        if self.state != states.CLOSED:
            self._transition(states.CLOSED)
        await self._release()
        if self._clear_timer is not None:
            self._clear_timer.cancel()
            self._clear_timer = None
        self.started.set()

    async def _release(self):
        stream, self._stream = self._stream, None
        if stream is None:
            return
        try:
            await stream.stop()
        except Exception as e:
            self.status.log(f"scan_session: stop failed (ignored): {e}")
        try:
            await stream.clear()
        except Exception as e:
            self.status.log(f"scan_session: clear failed (ignored): {e}")

    async def _fail(self, code: str, message: str):
        self.failure = ScanFailure(code, message)
        self.status.log(f"scan_session: fatal {code}: {message}")
        if self.state != states.CLOSED:
            self._transition(states.ERROR)
        self._emit_error(self.failure)
        await self.close()

    def _emit_error(self, failure: ScanFailure):
        if self.on_error is not None:
            self.on_error(failure)

    def _show_transient(self, message: str):
        self.last_error = message
        if self._clear_timer is not None:
            self._clear_timer.cancel()
        loop = asyncio.get_running_loop()
        self._clear_timer = loop.call_later(self.error_clear_s, self._clear_transient)

    def _clear_transient(self):
        self.last_error = None
        self._clear_timer = None


class Orchestrator:
    def __init__(self, camera, vision, status_store, *, preferred_device_id: Optional[str] = None,
                 error_clear_s: float = ERROR_CLEAR_S, config: Optional[StreamConfig] = None):
        self.camera = camera
        self.vision = vision
        self.status = status_store
        self.preferred_device_id = preferred_device_id
        self.error_clear_s = error_clear_s
        self.config = config or StreamConfig()
        self.session: Optional[ScanSession] = None
        self._task: Optional[asyncio.Task] = None

    @property
    def scanning(self) -> bool:
        return self.session is not None and self.session.state != states.CLOSED

    async def start_camera_scan(self, device_id: Optional[str] = None) -> ScanSession:
        """Open a scan session in the background.

        Returns once the session is scanning or has failed. Fatal failures
        (no camera, permission denied) are raised to the caller.
        """
        if self.scanning:
            raise SessionBusy("a scan session is already active")

        session = ScanSession(
            self.camera, self.status,
            preferred_device_id=device_id or self.preferred_device_id,
            config=self.config,
            error_clear_s=self.error_clear_s,
            on_success=self._record_result,
            on_error=self._record_failure,
        )
        self.session = session
        self.status.set_busy(True)
        self._begin_attempt()
        self._task = asyncio.create_task(self._run(session))
        await session.started.wait()
        if session.error is not None:
            await self._task
            raise session.error
        return session

    async def _run(self, session: ScanSession):
        try:
            await session.run()
        except ScanError as e:
            self.status.log(f"orchestrator: scan ended with {e.code}")
        finally:
            if self.session is session:
                self.status.set_busy(False)

    async def cancel_scan(self) -> None:
        session, task = self.session, self._task
        if session is not None:
            self.status.log("orchestrator: cancel requested")
            await session.close()
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task
        self.status.set_busy(False)

    async def wait_for_scan(self) -> Optional[ScanResult]:
        if self._task is not None:
            await self._task
        return self.session.result if self.session else None

    def scan_state(self) -> dict:
        s = self.session
        if s is None:
            return {"state": states.IDLE, "device": None, "last_error": None, "result": None, "failure": None}
        return {
            "state": s.state,
            "device": s.device,
            "last_error": s.last_error,
            "result": s.result,
            "failure": s.failure,
        }

    def recognize_image(self, image_bytes: bytes):
        self.status.log(f"orchestrator: vision fallback ({len(image_bytes)} bytes)")
        self._begin_attempt()
        outcome = self.vision.recognize(image_bytes)
        if isinstance(outcome, ScanResult):
            self._record_result(outcome)
        else:
            self._record_failure(outcome)
        return outcome

    def snapshot_and_recognize(self):
        if self.scanning:
            return ScanFailure(errors.ERR_BUSY, "camera is held by an active scan session")
        frame = self.camera.capture_bytes()
        if not frame:
            self._begin_attempt()
            failure = ScanFailure(errors.ERR_NO_CAMERA, "camera capture failed")
            self._record_failure(failure)
            return failure
        return self.recognize_image(frame)

    def check_text(self, raw: str):
        cand = make_candidate(raw)
        if not cand.valid:
            self.status.log(f"orchestrator: manual entry rejected '{raw}'")
            return ScanFailure(errors.ERR_INVALID_FORMAT, INVALID_FORMAT_MESSAGE, raw=raw, fatal=False)
        result = ScanResult(code=cand.normalized, source="manual", checksum_ok=checksum_ok(cand.normalized))
        self._record_result(result)
        return result

    def _begin_attempt(self):
        self.status.last_result = None
        self.status.last_failure = None
        self.status.last_error = None

    def _record_result(self, result: ScanResult):
        self.status.last_result = result
        self.status.last_failure = None
        self.status.last_error = None
        self.status.log(f"orchestrator: result {result.code} via {result.source} checksum_ok={result.checksum_ok}")

    def _record_failure(self, failure: ScanFailure):
        # transient decoder problems stay on the session, never in /status
        if not failure.fatal or failure.error_code in errors.TRANSIENT:
            return
        self.status.last_failure = failure
        self.status.last_error = failure.message
