"""doclens package root."""

from doclens.exceptions import DoclensError, InputError, ValidationError

__all__ = ["__version__", "DoclensError", "InputError", "ValidationError"]

__version__ = "0.1.0"
