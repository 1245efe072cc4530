from __future__ import annotations

from datetime import date

import pytest

from sq_translator.mapping import MappingContext, build_mapping

from samples import C71, GENDER, TODAY


@pytest.fixture()
def today() -> date:
    return TODAY


@pytest.fixture()
def gender_context() -> MappingContext:
    return MappingContext.of(
        [build_mapping(GENDER, "Patient", term_code_path=None, value_path="gender")]
    )


@pytest.fixture()
def condition_context() -> MappingContext:
    return MappingContext.of([build_mapping(C71, "Condition", term_code_path="code.coding")])
