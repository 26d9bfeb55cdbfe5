"""Exception types raised by the surfacelab kernel."""


class SurfaceLabError(Exception):
    """Base class for all kernel errors."""


class InvalidSurfaceError(SurfaceLabError, ValueError):
    """A surface definition violates the clamped NURBS invariants."""


class KnotInsertionError(SurfaceLabError, ValueError):
    """A knot value lies outside the open parameter domain."""


class ExchangeFormatError(SurfaceLabError, ValueError):
    """An exchange document is missing fields or has inconsistent sizes."""
