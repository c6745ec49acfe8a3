ERR_NO_CAMERA         = "NO_CAMERA_FOUND"
ERR_PERMISSION        = "PERMISSION_DENIED"
ERR_DECODER_NOISE     = "DECODER_NOISE"
ERR_INVALID_FORMAT    = "INVALID_FORMAT"
ERR_AI_SCAN_FAILED    = "AI_SCAN_FAILED"
ERR_NO_VALID_CODE     = "NO_VALID_CODE_FOUND"
ERR_SERVICE_UNAVAILABLE = "SERVICE_UNAVAILABLE"
ERR_BUSY              = "BUSY"
ERR_BAD_IMAGE         = "BAD_IMAGE"
ERR_UNKNOWN           = "UNKNOWN"

# Conditions absorbed inside a session; everything else ends the attempt.
TRANSIENT = {ERR_DECODER_NOISE, ERR_INVALID_FORMAT}


class ScanError(Exception):
    code = ERR_UNKNOWN

    def __init__(self, message: str = ""):
        super().__init__(message or self.code)
        self.message = message or self.code


class NoCameraFound(ScanError):
    code = ERR_NO_CAMERA


class PermissionDenied(ScanError):
    code = ERR_PERMISSION


class SessionBusy(ScanError):
    code = ERR_BUSY
