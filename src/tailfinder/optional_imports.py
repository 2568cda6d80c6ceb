"""Lazy loading of the libraries behind tailfinder's optional extras."""

from __future__ import annotations

from importlib import import_module
from typing import Any


def require(package: str, *, extra: str, purpose: str | None = None) -> Any:
    """Return ``package`` imported, or fail with the extra that provides it.

    Plot output is the only optional feature today: ``save_tail_plot`` asks
    for ``matplotlib.figure`` under the ``plot`` extra, so a run without
    ``--save-plots`` never imports matplotlib.

    Args:
        package: Dotted module path, e.g. ``"matplotlib.figure"``.
        extra: The ``tailfinder[...]`` extra that installs it.
        purpose: Feature named in the error message.

    Raises:
        ModuleNotFoundError: With a ``pip install`` hint.
    """
    try:
        return import_module(package)
    except ModuleNotFoundError as exc:  # pragma: no cover - depends on env
        needed_for = f" to {purpose}" if purpose else ""
        raise ModuleNotFoundError(
            f"'{package}' is needed{needed_for}; install it with "
            f"pip install 'tailfinder[{extra}]'"
        ) from exc
