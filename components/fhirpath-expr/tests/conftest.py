from __future__ import annotations

import pytest

from fhirpath_expr import Identifier


@pytest.fixture()
def a() -> Identifier:
    return Identifier("a")


@pytest.fixture()
def b() -> Identifier:
    return Identifier("b")


@pytest.fixture()
def c() -> Identifier:
    return Identifier("c")


@pytest.fixture()
def d() -> Identifier:
    return Identifier("d")
