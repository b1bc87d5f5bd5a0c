# core/errors.py
"""Исключения TorSwitch Client"""


class TorSwitchError(Exception):
    """Base class for application errors"""


class RequestAborted(TorSwitchError):
    """A tracked request was cancelled before it produced a result"""


class RequestTimeout(RequestAborted):
    """A tracked request exceeded its hard timeout"""


class StorageError(TorSwitchError):
    """The key-value store could not persist a value"""


class ChannelError(TorSwitchError):
    """The control channel failed to deliver a message or its response"""


class MessageError(TorSwitchError):
    """A control message has an unknown type or malformed fields"""
