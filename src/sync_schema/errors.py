"""Error taxonomy for the schema bootstrap. Every failure maps to exit code 1."""


class SchemaError(Exception):
    """Base class for bootstrap failures reported to the operator."""

    exit_code = 1


class ConfigError(SchemaError):
    """Connection URL missing or malformed. Raised before any connection attempt."""


class DatabaseConnectionError(SchemaError):
    """Could not open a connection (network, auth, unknown host). Not retried."""


class FatalApplyError(SchemaError):
    """A schema statement failed; the run stops at that unit."""

    def __init__(self, unit: str, message: str) -> None:
        super().__init__(f"{unit}: {message}")
        self.unit = unit


class AlreadyExists(SchemaError):
    """
    Diagnostic for a guarded unit whose object is already present.
    Collected by the applier; never propagated to the top level.
    """

    def __init__(self, unit: str, message: str) -> None:
        super().__init__(f"{unit}: {message}")
        self.unit = unit
