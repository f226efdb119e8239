"""
Error taxonomy for the remeshing driver.

Every error carries the process exit code that ``pyacvdq.cli.main`` returns
when it reaches the top level.
"""


class ACVDError(Exception):
    """Base class for all driver errors."""

    exit_code = 1


class UsageError(ACVDError):
    """Invalid or incomplete command line."""

    exit_code = 2


class HelpRequested(UsageError):
    """Invoked without arguments: print help and exit cleanly."""

    exit_code = 0


class MeshLoadError(ACVDError, ValueError):
    """The input mesh file could not be read as a triangle mesh."""

    exit_code = 3


class InvalidConstraintFile(ACVDError, ValueError):
    """A constraint file is unreadable or holds invalid identifiers."""

    exit_code = 4


class ConstraintViolation(ACVDError):
    """An anchored vertex was moved or lost by the remeshing engine."""

    exit_code = 1

    def __init__(self, vertex_id: int):
        self.vertex_id = int(vertex_id)
        super().__init__(f"Error, vertex {self.vertex_id} has been lost")


class RemeshingFailed(ACVDError):
    """The remeshing engine reported a failure."""

    exit_code = 5


class OutputWriteError(ACVDError):
    """The output mesh could not be written."""

    exit_code = 6


# returned by the command line for errors outside this taxonomy
UNEXPECTED_ERROR_EXIT_CODE = 7
