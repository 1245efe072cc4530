from decimal import Decimal

import pytest
from fhirpath_expr import TRUE, Comparator, MalformedLiteralError

from sq_translator.errors import InvalidMappingError, InvalidQueryShapeError
from sq_translator.mapping import AttributeMapping
from sq_translator.modifiers import (
    CodeModifier,
    CodingModifier,
    NumericAttributeFilter,
    NumericModifier,
    RangeAttributeFilter,
    RangeModifier,
    TimeRestrictionModifier,
    ValueSetAttributeFilter,
)
from sq_translator.terms import Term

from samples import CONFIRMED, VER_STATUS, VERIFICATION_STATUS

DIASTOLIC = Term("http://loinc.org", "8462-4", "Diastolic blood pressure")
COMPONENT_PATH = (
    "component.where(code.coding.where(system = 'http://loinc.org')"
    ".exists(code = '8462-4')).value.first()"
)


class TestCodeModifier:
    def test_single_code(self) -> None:
        assert CodeModifier("status", ("completed",)).expression().print() == (
            "status = 'completed'"
        )

    def test_several_codes(self) -> None:
        modifier = CodeModifier("status", ("completed", "in-progress"))

        assert modifier.expression().print() == (
            "status = 'completed' or\nstatus = 'in-progress'"
        )

    def test_pass_through_path(self) -> None:
        path = "extension.where(url = 'http://example.org/status').value"

        assert CodeModifier(path, ("final",)).expression().print() == f"{path} = 'final'"

    def test_needs_codes(self) -> None:
        with pytest.raises(InvalidQueryShapeError):
            CodeModifier("status", ())


class TestCodingModifier:
    def test_single_term(self) -> None:
        modifier = CodingModifier("verificationStatus", (CONFIRMED,))

        assert modifier.expression().print() == (
            f"verificationStatus.coding.where(system = '{VER_STATUS}').exists(code = 'confirmed')"
        )

    def test_several_terms(self) -> None:
        provisional = Term(VER_STATUS, "provisional")
        modifier = CodingModifier("verificationStatus", (CONFIRMED, provisional))

        assert modifier.expression().print() == (
            f"verificationStatus.coding.where(system = '{VER_STATUS}').exists(code = 'confirmed') or\n"
            f"verificationStatus.coding.where(system = '{VER_STATUS}').exists(code = 'provisional')"
        )

    def test_pass_through_path(self) -> None:
        modifier = CodingModifier(COMPONENT_PATH, (CONFIRMED,))

        assert modifier.expression().print() == (
            f"{COMPONENT_PATH}.coding.where(system = '{VER_STATUS}').exists(code = 'confirmed')"
        )

    def test_needs_terms(self) -> None:
        with pytest.raises(InvalidQueryShapeError):
            CodingModifier("verificationStatus", ())


class TestQuantityModifiers:
    def test_numeric(self) -> None:
        modifier = NumericModifier("valueQuantity", Comparator.LESS_THAN, 80, "mm[Hg]")

        assert modifier.value == Decimal("80")
        assert modifier.expression().print() == "valueQuantity < 80 'mm[Hg]'"

    def test_numeric_without_unit(self) -> None:
        modifier = NumericModifier("value", Comparator.EQUAL, Decimal("1.5"))

        assert modifier.expression().print() == "value = 1.5"

    def test_range(self) -> None:
        modifier = RangeModifier("value", 60, 100, "mm[Hg]")

        assert modifier.expression().print() == (
            "value >= 60 'mm[Hg]' and\nvalue <= 100 'mm[Hg]'"
        )


class TestTimeRestrictionModifier:
    def test_open_window_is_true(self) -> None:
        assert TimeRestrictionModifier("effective").expression() == TRUE

    def test_before_only(self) -> None:
        modifier = TimeRestrictionModifier("effective", before="2021-01-01")

        assert modifier.expression().print() == (
            "effective.dateTime < @2021-01-01 or\neffective.period.start < @2021-01-01"
        )

    def test_after_only(self) -> None:
        modifier = TimeRestrictionModifier("effective", after="2021-01-01T")

        assert modifier.expression().print() == (
            "effective.dateTime > @2021-01-01 or\neffective.period.end > @2021-01-01"
        )

    def test_both_bounds(self) -> None:
        modifier = TimeRestrictionModifier("effective", after="2021-01-01", before="2022-01-01")

        assert modifier.expression().print() == (
            "effective.dateTime > @2021-01-01 and\n"
            "effective.dateTime < @2022-01-01 or\n"
            "effective.period.start > @2021-01-01 and\n"
            "effective.period.start < @2022-01-01 or\n"
            "effective.period.end > @2021-01-01 and\n"
            "effective.period.end < @2022-01-01"
        )

    def test_malformed_bound_fails_at_construction(self) -> None:
        with pytest.raises(MalformedLiteralError):
            TimeRestrictionModifier("effective", after="yesterday")


class TestAttributeFilters:
    def test_numeric_filter_uses_mapping_path(self) -> None:
        attribute_mapping = AttributeMapping("", DIASTOLIC, COMPONENT_PATH)
        attribute_filter = NumericAttributeFilter(DIASTOLIC, Comparator.LESS_THAN, 80, "mm[Hg]")

        modifier = attribute_filter.to_modifier(attribute_mapping)

        assert modifier.expression().print() == f"{COMPONENT_PATH} < 80 'mm[Hg]'"

    def test_range_filter(self) -> None:
        attribute_mapping = AttributeMapping("", DIASTOLIC, "value")

        modifier = RangeAttributeFilter(DIASTOLIC, 60, 100, "mm[Hg]").to_modifier(attribute_mapping)

        assert modifier == RangeModifier("value", Decimal(60), Decimal(100), "mm[Hg]")

    def test_value_set_filter_with_coding_mapping(self) -> None:
        attribute_mapping = AttributeMapping("Coding", VERIFICATION_STATUS, "verificationStatus")

        modifier = ValueSetAttributeFilter(VERIFICATION_STATUS, (CONFIRMED,)).to_modifier(
            attribute_mapping
        )

        assert modifier == CodingModifier("verificationStatus", (CONFIRMED,))

    def test_value_set_filter_with_code_mapping(self) -> None:
        attribute_mapping = AttributeMapping("Code", VERIFICATION_STATUS, "status")

        modifier = ValueSetAttributeFilter(VERIFICATION_STATUS, (CONFIRMED,)).to_modifier(
            attribute_mapping
        )

        assert modifier == CodeModifier("status", ("confirmed",))

    def test_value_set_filter_with_unknown_kind(self) -> None:
        attribute_mapping = AttributeMapping("Reference", VERIFICATION_STATUS, "status")

        with pytest.raises(InvalidMappingError, match="unknown attribute mapping type"):
            ValueSetAttributeFilter(VERIFICATION_STATUS, (CONFIRMED,)).to_modifier(
                attribute_mapping
            )

    def test_value_set_filter_needs_selection(self) -> None:
        with pytest.raises(InvalidQueryShapeError):
            ValueSetAttributeFilter(VERIFICATION_STATUS, ())
