"""Exceptions raised by surface mappers.

Invalid input is detected while a mapper initializes and is reported with one
of the `SurfaceMapperError` subclasses below, all of which derive from
`ValueError`. Calling the mapper stages out of order raises `MapperStateError`.
"""


class SurfaceMapperError(ValueError):
    """Base class for invalid surface mapper input."""


class MissingSurfaceError(SurfaceMapperError):
    """No input surface mesh was set."""


class NotASurfaceError(SurfaceMapperError):
    """The input point set has no triangles."""


class InvalidValuesError(SurfaceMapperError):
    """The map values array does not have one entry per surface point."""


class InvalidMaskError(SurfaceMapperError):
    """The fixed point mask does not have one entry per surface point."""


class MissingBoundaryConditionsError(SurfaceMapperError):
    """No map values (boundary conditions) were provided."""


class MapperStateError(RuntimeError):
    """A mapper stage was called before the stage it depends on."""
