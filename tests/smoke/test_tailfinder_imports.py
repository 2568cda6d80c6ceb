"""Import smoke tests for tailfinder modules."""

from __future__ import annotations

import pytest

from tests.smoke.import_helpers import import_module_or_skip

MODULES = [
    "tailfinder",
    "tailfinder.constants",
    "tailfinder.errors",
    "tailfinder.find_tails",
    "tailfinder.logging_utils",
    "tailfinder.optional_imports",
    "tailfinder.parallel_utils",
    "tailfinder.readwrite",
    "tailfinder.scheduler",
]


@pytest.mark.parametrize("module_name", MODULES)
@pytest.mark.smoke
def test_imports(module_name: str) -> None:
    import_module_or_skip(module_name)
