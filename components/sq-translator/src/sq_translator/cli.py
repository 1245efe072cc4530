"""Command line entry point: translate a structured query file to Parameters JSON."""

from __future__ import annotations

import argparse
import json
import logging
import sys
from datetime import date

from dotenv import find_dotenv, load_dotenv
from pydantic import ValidationError

from fhirpath_expr import MalformedLiteralError
from sq_translator.config import TranslatorConfig
from sq_translator.errors import TranslationError
from sq_translator.loader import load_mapping_context
from sq_translator.schemas import parse_structured_query
from sq_translator.translator import translate

logger = logging.getLogger(__name__)


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Translate a structured query into aggregate request parameters"
    )
    parser.add_argument("query", help="Structured query JSON file, or - for stdin")
    parser.add_argument("--mapping", help="Mapping JSON file (default: $SQ_MAPPING_PATH)")
    parser.add_argument(
        "--concept-tree", help="Concept tree JSON file (default: $SQ_CONCEPT_TREE_PATH)"
    )
    parser.add_argument(
        "--today",
        type=date.fromisoformat,
        help="Reference date for age criteria as YYYY-MM-DD (default: today)",
    )
    parser.add_argument("--log-level", help="Logging level (default: $LOG_LEVEL or INFO)")
    return parser


def _configure_logging(level: int) -> None:
    logging.basicConfig(
        level=level,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        stream=sys.stderr,
        force=True,
    )


def run(args: argparse.Namespace, config: TranslatorConfig) -> dict:
    """Translate the query named in ``args`` and return the Parameters resource."""
    mapping_path = args.mapping or config.mapping_path
    if not mapping_path:
        raise TranslationError("No mapping file given; use --mapping or SQ_MAPPING_PATH.")
    context = load_mapping_context(mapping_path, args.concept_tree or config.concept_tree_path)
    if args.query == "-":
        document = sys.stdin.read()
    else:
        with open(args.query, "rb") as handle:
            document = handle.read()
    query = parse_structured_query(document)
    return translate(query, context, args.today).to_dict()


def main(argv: list[str] | None = None) -> None:
    """CLI entrypoint."""
    load_dotenv(find_dotenv(usecwd=True))
    args = _build_parser().parse_args(argv)
    config = TranslatorConfig.from_env()
    level = getattr(logging, (args.log_level or "").upper(), None)
    _configure_logging(level if isinstance(level, int) else config.logging_level)

    try:
        parameters = run(args, config)
    except (TranslationError, MalformedLiteralError, ValidationError, OSError) as exc:
        logger.error("Translation failed: %s", exc)
        raise SystemExit(1) from exc
    print(json.dumps(parameters, indent=2))


if __name__ == "__main__":
    main()
