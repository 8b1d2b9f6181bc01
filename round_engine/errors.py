"""Exception types raised by the round engines."""


class EngineError(Exception):
    """Base engine error"""


class InvalidArgument(EngineError, ValueError):
    """Caller passed a value the engine cannot act on"""


class ContractViolation(EngineError, RuntimeError):
    """Round lifecycle used out of order (programming error upstream)"""
