class ImpermanenceError(Exception):
    """Base exception for all impermanence errors."""


class ConfigurationError(ImpermanenceError):
    """Raised when the persistence configuration is invalid."""


class InvalidPathError(ConfigurationError):
    """Raised when a declared path is not an absolute, normalized path."""


class PlanningError(ConfigurationError):
    """Base exception for conflicts found while building the mount plan."""


class DuplicateTargetError(PlanningError):
    """Raised when two mount entries claim the same target path."""

    def __init__(self, target: str, first_root: str, second_root: str):
        self.target = target
        self.first_root = first_root
        self.second_root = second_root
        if first_root == second_root:
            message = f"Target path {target!r} is declared more than once under {first_root!r}"
        else:
            message = (
                f"Target path {target!r} is claimed by both "
                f"{first_root!r} and {second_root!r}"
            )
        super().__init__(message)


class AmbiguousKindError(PlanningError):
    """Raised when a path is declared both as a file and a directory."""

    def __init__(self, persistent_root: str, path: str):
        self.persistent_root = persistent_root
        self.path = path
        super().__init__(
            f"Path {path!r} under {persistent_root!r} is declared both as a file and a directory"
        )


class PreflightError(ImpermanenceError):
    """Raised when a persistent root is not available early enough in boot."""


class ProvisionError(ImpermanenceError):
    """Base exception for failures provisioning a single target."""

    def __init__(self, path: str, message: str):
        self.path = path
        super().__init__(message)


class PathConflictError(ProvisionError):
    """Raised when a path component exists but has the wrong type."""

    def __init__(self, path: str, expected: str):
        self.expected = expected
        super().__init__(path, f"{path!r} exists but is not a {expected}")


class IOFailure(ProvisionError):
    """Raised when a filesystem operation fails with an OS error."""

    def __init__(self, path: str, operation: str, cause: OSError):
        self.operation = operation
        self.cause = cause
        reason = cause.strerror or str(cause)
        super().__init__(path, f"Failed to {operation} {path!r}: {reason}")
