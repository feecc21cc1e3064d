class InputError(ValueError):
    """A scan was submitted without a usable code; nothing was sent or stored."""


class TransportError(Exception):
    """The marking service could not be reached or gave no usable answer."""


class StorageUnavailable(Exception):
    """The device-local offline store cannot be read or written."""
