"""Load mapping contexts and structured queries from JSON files."""

from __future__ import annotations

import logging
from pathlib import Path

from sq_translator.mapping import MappingContext
from sq_translator.schemas import parse_concept_tree, parse_mappings, parse_structured_query
from sq_translator.translator import StructuredQuery

logger = logging.getLogger(__name__)


def load_mapping_context(
    mapping_path: str | Path, concept_tree_path: str | Path | None = None
) -> MappingContext:
    """Read mappings and an optional concept tree into a mapping context.

    Args:
        mapping_path: JSON file holding a list of mappings.
        concept_tree_path: JSON file holding the root concept node.

    Returns:
        The mapping context.

    Raises:
        OSError: If a file cannot be read.
        pydantic.ValidationError: If a document does not match its schema.
    """
    mappings = parse_mappings(Path(mapping_path).read_bytes())
    concept_tree = None
    if concept_tree_path is not None:
        concept_tree = parse_concept_tree(Path(concept_tree_path).read_bytes())
    logger.info(
        "Loaded %d mappings from %s%s",
        len(mappings),
        mapping_path,
        f" with concept tree {concept_tree_path}" if concept_tree_path else "",
    )
    return MappingContext.of(mappings, concept_tree)


def load_structured_query(path: str | Path) -> StructuredQuery:
    return parse_structured_query(Path(path).read_bytes())
