from __future__ import annotations


class FarmResetError(RuntimeError):
    """Base class for failures raised by the reset core."""


class FarmNotFoundError(FarmResetError):
    """Raised when a named farm or its world cannot be located."""


class ResetInProgressError(FarmResetError):
    """Raised when a manual reset is requested while another reset is running."""


class WorldCreateFailedError(FarmResetError):
    """Raised by a world host when a world could not be (re)created."""


class PersistenceError(FarmResetError):
    """Raised when a state file cannot be read or written."""


class InvalidFarmError(FarmResetError):
    """Raised when a farm cannot be built from the selected corners."""
