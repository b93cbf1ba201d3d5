class BuddyError(Exception):
    pass


class ConfigError(BuddyError):
    pass


class TransportError(BuddyError):
    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class TurnInProgressError(BuddyError):
    pass


class NoModelSelectedError(BuddyError):
    pass


class ModelNotLoadedError(BuddyError):
    pass


class ModelLoadError(BuddyError):
    pass


class SandboxViolation(BuddyError):
    pass


class FileOperationError(BuddyError):
    pass
