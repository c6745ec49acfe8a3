from typing import Literal

ScanState = Literal["idle", "requesting", "scanning", "error", "closed"]

IDLE       = "idle"
REQUESTING = "requesting"  # enumerating devices / awaiting permission
SCANNING   = "scanning"
ERROR      = "error"       # fatal failure recorded, release in progress
CLOSED     = "closed"      # terminal, camera released

# Transitions:
# idle -> requesting -> scanning -> closed
# requesting -> error -> closed   (no camera / permission denied)
# any -> closed                   (caller cancel)
TRANSITIONS = {
    IDLE:       {REQUESTING, CLOSED},
    REQUESTING: {SCANNING, ERROR, CLOSED},
    SCANNING:   {SCANNING, ERROR, CLOSED},
    ERROR:      {CLOSED},
    CLOSED:     set(),
}
