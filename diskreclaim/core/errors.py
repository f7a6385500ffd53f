"""Exception types raised by the DiskReclaim core"""


class DiskReclaimError(Exception):
    """Base class for DiskReclaim errors"""


class ScanError(DiskReclaimError):
    """The scan root is missing or not a directory; nothing was traversed"""

    def __init__(self, root: str, reason: str):
        self.root = root
        self.reason = reason
        super().__init__(f"Cannot scan {root}: {reason}")


class SessionError(DiskReclaimError):
    """A session operation was called in the wrong state"""


class ConfigError(DiskReclaimError, ValueError):
    """Invalid configuration value"""
