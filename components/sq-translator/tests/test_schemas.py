import json
from decimal import Decimal

import pytest
from fhirpath_expr import Comparator
from pydantic import ValidationError

from sq_translator.criteria import (
    ConceptCriterion,
    NumericCriterion,
    RangeCriterion,
    TimeRestriction,
    ValueSetCriterion,
)
from sq_translator.errors import InvalidQueryShapeError
from sq_translator.modifiers import (
    CodeModifier,
    CodingModifier,
    NumericAttributeFilter,
    RangeAttributeFilter,
)
from sq_translator.schemas import (
    CriterionSchema,
    parse_concept_tree,
    parse_mappings,
    parse_structured_query,
)
from sq_translator.terms import Term

from samples import C71, C71_1, C71_2, CONFIRMED, CONTEXT, LOINC, VER_STATUS, concept

CONTEXT_JSON = {"system": "context", "code": "context", "display": "context"}
C71_JSON = {
    "system": "http://fhir.de/CodeSystem/bfarm/icd-10-gm",
    "code": "C71",
    "display": "Malignant neoplasm of brain",
}
WEIGHT_JSON = {"system": LOINC, "code": "29463-7", "display": "Body weight"}


def _criterion(**extra) -> dict:
    return {"context": CONTEXT_JSON, "termCodes": [C71_JSON], **extra}


class TestCriterionSchema:
    def test_concept_criterion(self) -> None:
        criterion = CriterionSchema.model_validate(_criterion()).to_criterion()

        assert criterion == ConceptCriterion(concept=concept(C71))

    def test_unknown_keys_are_ignored(self) -> None:
        criterion = CriterionSchema.model_validate(_criterion(**{"foo-151633": "bar"}))

        assert criterion.to_criterion() == ConceptCriterion(concept=concept(C71))

    def test_several_term_codes(self) -> None:
        document = {
            "context": CONTEXT_JSON,
            "termCodes": [
                {"system": C71_1.term.system, "code": "C71.1"},
                {"system": C71_2.term.system, "code": "C71.2"},
            ],
        }

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert criterion.concept.contextual_terms() == [C71_1, C71_2]

    def test_numeric_value_filter(self) -> None:
        document = _criterion(
            termCodes=[WEIGHT_JSON],
            valueFilter={
                "type": "quantity-comparator",
                "comparator": "gt",
                "value": 50,
                "unit": {"code": "kg"},
            },
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert isinstance(criterion, NumericCriterion)
        assert criterion.comparator is Comparator.GREATER_THAN
        assert criterion.value == Decimal("50")
        assert criterion.unit == "kg"

    def test_range_value_filter(self) -> None:
        document = _criterion(
            valueFilter={"type": "quantity-range", "minValue": 20, "maxValue": 30.5},
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert isinstance(criterion, RangeCriterion)
        assert (criterion.lower, criterion.upper, criterion.unit) == (
            Decimal("20"),
            Decimal("30.5"),
            None,
        )

    def test_concept_value_filter(self) -> None:
        document = _criterion(
            valueFilter={
                "type": "concept",
                "selectedConcepts": [{"system": VER_STATUS, "code": "confirmed"}],
            },
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert isinstance(criterion, ValueSetCriterion)
        assert criterion.selected_concepts == (CONFIRMED,)

    def test_concept_value_filter_without_selection(self) -> None:
        document = _criterion(valueFilter={"type": "concept", "selectedConcepts": []})

        with pytest.raises(InvalidQueryShapeError, match="selectedConcepts"):
            CriterionSchema.model_validate(document).to_criterion()

    def test_unknown_value_filter_type(self) -> None:
        document = _criterion(valueFilter={"type": "reference"})

        with pytest.raises(InvalidQueryShapeError, match="unknown valueFilter type"):
            CriterionSchema.model_validate(document).to_criterion()

    def test_missing_comparator(self) -> None:
        document = _criterion(valueFilter={"type": "quantity-comparator", "value": 1})

        with pytest.raises(InvalidQueryShapeError, match="comparator"):
            CriterionSchema.model_validate(document).to_criterion()

    def test_unknown_comparator(self) -> None:
        document = _criterion(
            valueFilter={"type": "quantity-comparator", "comparator": "approx", "value": 1}
        )

        with pytest.raises(InvalidQueryShapeError, match="unknown comparator"):
            CriterionSchema.model_validate(document).to_criterion()

    def test_time_restriction(self) -> None:
        document = _criterion(
            timeRestriction={"afterDate": "2021-01-01T", "beforeDate": "2022-01-01T"}
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert criterion.time_restriction == TimeRestriction("2021-01-01T", "2022-01-01T")

    def test_attribute_filters(self) -> None:
        diastolic = {"system": LOINC, "code": "8462-4", "display": "Diastolic blood pressure"}
        document = _criterion(
            attributeFilters=[
                {
                    "attributeCode": diastolic,
                    "type": "quantity-comparator",
                    "comparator": "lt",
                    "value": 80,
                    "unit": {"code": "mm[Hg]"},
                },
                {
                    "attributeCode": diastolic,
                    "type": "quantity-range",
                    "minValue": 60,
                    "maxValue": 100,
                    "unit": {"code": "mm[Hg]"},
                },
            ]
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        code = Term(LOINC, "8462-4")
        assert criterion.attribute_filters == (
            NumericAttributeFilter(code, Comparator.LESS_THAN, Decimal(80), "mm[Hg]"),
            RangeAttributeFilter(code, Decimal(60), Decimal(100), "mm[Hg]"),
        )

    def test_empty_concept_attribute_filter_is_skipped(
        self, caplog: pytest.LogCaptureFixture
    ) -> None:
        document = _criterion(
            attributeFilters=[
                {
                    "attributeCode": {"system": "hl7.org", "code": "verificationStatus"},
                    "type": "concept",
                    "selectedConcepts": [],
                }
            ]
        )

        criterion = CriterionSchema.model_validate(document).to_criterion()

        assert criterion.attribute_filters == ()
        assert "Skip attribute filter with code `verificationStatus`" in caplog.text

    def test_unknown_attribute_filter_type(self) -> None:
        document = _criterion(
            attributeFilters=[{"attributeCode": C71_JSON, "type": "reference"}]
        )

        with pytest.raises(InvalidQueryShapeError, match="unknown attribute filter type"):
            CriterionSchema.model_validate(document).to_criterion()

    def test_missing_term_codes_is_a_validation_error(self) -> None:
        with pytest.raises(ValidationError):
            CriterionSchema.model_validate({"context": CONTEXT_JSON})


class TestParseStructuredQuery:
    def test_from_json_text(self) -> None:
        document = json.dumps(
            {
                "version": "http://to_be_decided.com/draft-1/schema#",
                "inclusionCriteria": [[_criterion()]],
                "exclusionCriteria": [[_criterion(termCodes=[WEIGHT_JSON])]],
            }
        )

        query = parse_structured_query(document)

        assert query.inclusion_criteria == ((ConceptCriterion(concept=concept(C71)),),)
        assert len(query.exclusion_criteria) == 1
        assert query.has_exclusions

    def test_exclusion_defaults_to_empty(self) -> None:
        query = parse_structured_query({"inclusionCriteria": [[_criterion()]]})

        assert query.exclusion_criteria == ()
        assert not query.has_exclusions


class TestParseMappings:
    def test_full_mapping(self) -> None:
        document = [
            {
                "context": CONTEXT_JSON,
                "key": C71_JSON,
                "resourceType": "Condition",
                "termCodeFhirPath": "code.coding",
                "timeRestrictionFhirPath": "onset",
                "fixedCriteria": [
                    {"type": "code", "fhirPath": "clinicalStatus", "value": [{"system": "s", "code": "active"}]},
                    {"type": "coding", "fhirPath": "verificationStatus", "value": [
                        {"system": VER_STATUS, "code": "confirmed"}
                    ]},
                ],
                "attributeFhirPaths": [
                    {
                        "attributeType": "Coding",
                        "attributeKey": {"system": "hl7.org", "code": "verificationStatus"},
                        "attributePath": "verificationStatus",
                    }
                ],
            }
        ]

        (mapping,) = parse_mappings(document)

        assert mapping.key == C71
        assert mapping.term_code_path == "code.coding"
        assert mapping.value_path == "value"
        assert mapping.time_restriction_path == "onset"
        assert mapping.fixed_modifiers == (
            CodeModifier("clinicalStatus", ("active",)),
            CodingModifier("verificationStatus", (CONFIRMED,)),
        )
        attribute = mapping.attribute_mappings[Term("hl7.org", "verificationStatus")]
        assert attribute.path == "verificationStatus"

    def test_minimal_mapping_has_no_term_code_path(self) -> None:
        document = json.dumps(
            [{"context": CONTEXT_JSON, "key": C71_JSON, "resourceType": "Patient",
              "valueFhirPath": "gender"}]
        )

        (mapping,) = parse_mappings(document)

        assert mapping.term_code_path is None
        assert mapping.value_path == "gender"

    def test_resource_type_is_required(self) -> None:
        with pytest.raises(ValidationError):
            parse_mappings([{"context": CONTEXT_JSON, "key": C71_JSON}])

    def test_modifier_without_values(self) -> None:
        document = [
            {
                "context": CONTEXT_JSON,
                "key": C71_JSON,
                "resourceType": "Condition",
                "fixedCriteria": [{"type": "code", "fhirPath": "status", "value": []}],
            }
        ]

        with pytest.raises(InvalidQueryShapeError, match="empty `value`"):
            parse_mappings(document)

    def test_unknown_modifier_type(self) -> None:
        document = [
            {
                "context": CONTEXT_JSON,
                "key": C71_JSON,
                "resourceType": "Condition",
                "fixedCriteria": [
                    {"type": "quantity", "fhirPath": "status", "value": [C71_JSON]}
                ],
            }
        ]

        with pytest.raises(InvalidQueryShapeError, match="unknown type: quantity"):
            parse_mappings(document)


class TestParseConceptTree:
    def test_nested_tree(self) -> None:
        document = {
            "context": CONTEXT_JSON,
            "termCode": C71_JSON,
            "children": [
                {"context": CONTEXT_JSON, "termCode": {"system": C71_1.term.system, "code": "C71.1"}},
                {"context": CONTEXT_JSON, "termCode": {"system": C71_2.term.system, "code": "C71.2"}},
            ],
        }

        tree = parse_concept_tree(document)

        assert tree.term == C71
        assert list(tree.expand(C71)) == [C71_1, C71_2]
        assert tree.children[0].term.context == CONTEXT
