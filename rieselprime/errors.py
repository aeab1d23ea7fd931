"""Exit codes and the exception hierarchy.

Exit codes below 10 are part of the command line contract:

    0  h*2^n-1 proven prime
    1  h*2^n-1 proven composite
    2  h*2^n-1 is outside the domain of the Riesel test (e.g. h >= 2^n)
    4  checkpoint directory missing or inaccessible
    5  checkpoint directory locked by another process
    6  cannot restore: checkpoint missing, incomplete, malformed or ambiguous
    7  caught a stop signal, checkpointed and exited
    8  help requested
    9  invalid, incompatible or missing flags and arguments

Internal errors use 10 and up: 10-39 driver, 40-69 Lucas engine, 70-99 checkpoint store.
"""

EXIT_IS_PRIME = 0
EXIT_IS_COMPOSITE = 1
EXIT_CANNOT_TEST = 2
EXIT_CHKPT_ACCESS = 4
EXIT_LOCKED = 5
EXIT_CANNOT_RESTORE = 6
EXIT_SIGNAL = 7
EXIT_HELP = 8
EXIT_USAGE = 9
EXIT_INTERNAL = 10


class RieselError(Exception):
    """Base class; exit_code is what the command line exits with."""
    exit_code = EXIT_INTERNAL


class CandidateError(RieselError):
    exit_code = EXIT_CANNOT_TEST


class CheckpointAccessError(RieselError):
    exit_code = EXIT_CHKPT_ACCESS


class CheckpointLockedError(RieselError):
    exit_code = EXIT_LOCKED


class RestoreError(RieselError):
    exit_code = EXIT_CANNOT_RESTORE


class InterruptedAfterCheckpoint(RieselError):
    exit_code = EXIT_SIGNAL

    def __init__(self, index):
        super().__init__(f"stop requested, checkpointed at U({index})")
        self.index = index


class UsageError(RieselError):
    exit_code = EXIT_USAGE


class SeedNotFoundError(RieselError):
    exit_code = 40


class ArithmeticAnomaly(RieselError):
    exit_code = 41


class CheckpointIOError(RieselError):
    exit_code = 70


class ResultExistsError(RieselError):
    exit_code = 71
