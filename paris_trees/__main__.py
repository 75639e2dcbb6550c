"""Command line: ``python -m paris_trees``.

Renders the document once.  Options override the ``PARIS_TREES_*``
environment configuration for this run only.
"""

from __future__ import annotations

import argparse
import dataclasses
import logging
import sys

from paris_trees.core.config import DocumentConfig, validate
from paris_trees.core.exceptions import PipelineError
from paris_trees.core.logging import setup_logging
from paris_trees.orchestrators.document import run_document

logger = logging.getLogger("paris_trees.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="python -m paris_trees",
        description="Download, prepare and analyse the Paris tree inventory.",
    )
    parser.add_argument("--cache-dir", help="directory of raw downloads and prepared data")
    parser.add_argument("--output-dir", help="directory receiving figures and report.md")
    parser.add_argument(
        "--refresh", action="store_true", help="ignore cached files and download again"
    )
    parser.add_argument("--focal-species", help="species of the concentration analysis")
    parser.add_argument("--park", help="park of the diversity accumulation analysis")
    parser.add_argument(
        "--simulations", type=int, help="random-labelling simulations per envelope"
    )
    parser.add_argument("--seed", type=int, help="seed of the simulations")
    parser.add_argument("--log-file", help="also write the log to this file")
    parser.add_argument("-v", "--verbose", action="store_true", help="debug logging")
    return parser


def apply_overrides(config: DocumentConfig, args: argparse.Namespace) -> DocumentConfig:
    """Return *config* with every option given on the command line applied."""
    overrides: dict[str, object] = {}
    for option, field_name in (
        ("cache_dir", "cache_dir"),
        ("output_dir", "output_dir"),
        ("focal_species", "focal_species"),
        ("park", "park"),
        ("simulations", "n_simulations"),
        ("seed", "random_seed"),
    ):
        value = getattr(args, option)
        if value is not None:
            overrides[field_name] = value
    if args.refresh:
        overrides["refresh"] = True
    config = dataclasses.replace(config, **overrides)
    validate(config)
    return config


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(logging.DEBUG if args.verbose else logging.INFO, args.log_file)

    try:
        config = apply_overrides(DocumentConfig.from_env(), args)
    except ValueError as err:
        logger.error("document failed | invalid configuration | error=%s", err)
        return 1
    except PipelineError as err:
        logger.error("document failed | error=%s", err.to_error_dict())
        return 1

    try:
        summary = run_document(config)
    except PipelineError as err:
        logger.error("document failed | error=%s", err.to_error_dict())
        return 1

    logger.info("document %s | %s", summary["status"], summary["message"])
    return 0


if __name__ == "__main__":
    sys.exit(main())
