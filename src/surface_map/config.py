"""Global configuration for surface-map solvers.

This module provides a package-wide configuration surface for the linear
solver defaults (iteration cap, convergence tolerance) and the diagnostic
verbosity used by the mappers, plus robust logging setup. Mappers read these
defaults once, at construction, so a running solve never observes a change.
"""

from __future__ import annotations

from dataclasses import dataclass, replace
import contextlib
import logging
import os
from typing import Iterator, Optional


# -----------------------------------------------------------------------------
# Logging
# -----------------------------------------------------------------------------
_LOGGER = logging.getLogger("surface_map.config")
_PACKAGE_LOGGER = logging.getLogger("surface_map")


def _parse_log_level(val: str | int | None, default: int = logging.WARNING) -> int:
    """Parse a logging level string or int into a `logging` level constant.

    Args:
        val: The desired level (e.g., "DEBUG", 10). May be None.
        default: Fallback level if `val` cannot be parsed.

    Returns:
        An integer logging level (e.g., logging.DEBUG).
    """
    if val is None:
        return default
    if isinstance(val, int):
        return val
    lvl = getattr(logging, str(val).strip().upper(), None)
    if isinstance(lvl, int):
        return lvl
    return default


def set_log_level(level: str | int = "WARNING") -> None:
    """Set the package logger level programmatically.

    Args:
        level: A standard logging level name or integer.
    """
    _PACKAGE_LOGGER.setLevel(_parse_log_level(level))


# Default level can be overridden by env.
set_log_level(os.getenv("SURFACE_MAP_LOGLEVEL", "WARNING"))


# -----------------------------------------------------------------------------
# Env helpers
# -----------------------------------------------------------------------------
def bool_env(varname: str, default: bool) -> bool:
    """Read an environment variable and interpret it as a boolean.

    True values: 'y', 'yes', 't', 'true', 'on', '1'.
    False values: 'n', 'no', 'f', 'false', 'off', '0'.

    Args:
        varname: The name of the environment variable.
        default: The default value if the variable is unset.

    Returns:
        A boolean value parsed from the environment.
    """
    val = os.getenv(varname, str(default))
    val = val.lower()
    if val in ("y", "yes", "t", "true", "on", "1"):
        return True
    if val in ("n", "no", "f", "false", "off", "0"):
        return False
    raise ValueError(f"invalid truth value {val!r} for environment {varname!r}")


def int_env(varname: str, default: int) -> int:
    """Read an environment variable and interpret it as an integer."""
    return int(os.getenv(varname, str(default)))


def float_env(varname: str, default: float) -> float:
    """Read an environment variable and interpret it as a float."""
    return float(os.getenv(varname, str(default)))


# -----------------------------------------------------------------------------
# Solver settings
# -----------------------------------------------------------------------------
@dataclass(frozen=True)
class SolverSettings:
    """Defaults handed to a mapper's linear solver.

    Attributes:
        max_iterations: Iteration cap; non-positive means solver default.
        tolerance: Relative residual tolerance; non-positive means solver default.
        verbose: If True, solve diagnostics are logged at INFO instead of DEBUG.
    """

    max_iterations: int = 0
    tolerance: float = 0.0
    verbose: bool = False


def _settings_from_env() -> SolverSettings:
    settings = SolverSettings(
        max_iterations=int_env("SURFACE_MAP_MAX_ITERATIONS", 0),
        tolerance=float_env("SURFACE_MAP_TOLERANCE", 0.0),
        verbose=bool_env("SURFACE_MAP_VERBOSE", False),
    )
    _LOGGER.debug("Solver settings from environment: %s", settings)
    return settings


class Config:
    """Global configuration for surface-map solver defaults.

    Holds the active `SolverSettings` and allows reconfiguring them globally or
    temporarily (context manager).
    """

    def __init__(self) -> None:
        """Initialize config using environment defaults."""
        self._settings = _settings_from_env()
        _LOGGER.info("Config initialized: %s", self._settings)

    def configure(
        self,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        verbose: Optional[bool] = None,
    ) -> Config:
        """Update the active solver defaults; `None` keeps the current value.

        Returns:
            The `Config` instance (for chaining).
        """
        changes = {}
        if max_iterations is not None:
            changes["max_iterations"] = int(max_iterations)
        if tolerance is not None:
            changes["tolerance"] = float(tolerance)
        if verbose is not None:
            changes["verbose"] = bool(verbose)
        self._settings = replace(self._settings, **changes)
        _LOGGER.info("Reconfigured: %s", self._settings)
        return self

    @contextlib.contextmanager
    def use(
        self,
        *,
        max_iterations: Optional[int] = None,
        tolerance: Optional[float] = None,
        verbose: Optional[bool] = None,
    ) -> Iterator[SolverSettings]:
        """Temporarily override solver defaults within a context manager.

        Yields:
            The temporary settings. The previous settings are restored on exit.
        """
        prev = self._settings
        try:
            self.configure(
                max_iterations=max_iterations, tolerance=tolerance, verbose=verbose
            )
            yield self._settings
        finally:
            self._settings = prev
            _LOGGER.info("Restored previous settings: %s", self._settings)

    @property
    def settings(self) -> SolverSettings:
        """Return the active solver settings."""
        return self._settings

    @property
    def max_iterations(self) -> int:
        return self._settings.max_iterations

    @property
    def tolerance(self) -> float:
        return self._settings.tolerance

    @property
    def verbose(self) -> bool:
        return self._settings.verbose


# Singleton & forwards
config = Config()


def configure(
    *,
    max_iterations: Optional[int] = None,
    tolerance: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> Config:
    """Update the active solver defaults (module-level)."""
    return config.configure(
        max_iterations=max_iterations, tolerance=tolerance, verbose=verbose
    )


def use(
    *,
    max_iterations: Optional[int] = None,
    tolerance: Optional[float] = None,
    verbose: Optional[bool] = None,
) -> contextlib.AbstractContextManager[SolverSettings]:
    """Temporarily override solver defaults (module-level)."""
    return config.use(
        max_iterations=max_iterations, tolerance=tolerance, verbose=verbose
    )


def settings() -> SolverSettings:
    """Return the active solver settings (module-level)."""
    return config.settings
