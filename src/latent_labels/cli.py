"""
Command-line interface for latent-class soft labels.

Provides subcommands for validating a fitted model, reporting its
conditional probability table, and computing posterior soft labels
for a CSV batch of subjects.
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Optional

from . import batches
from . import cpt
from . import posterior
from . import settings as settings_module
from .errors import LatentLabelError
from .model import load_model
from ..logging_config import configure_logging


def _split_names(value: Optional[str]) -> Optional[list]:
    if value is None:
        return None
    return [name.strip() for name in value.split(",") if name.strip()]


def cmd_validate(args: argparse.Namespace) -> int:
    """Validate a fitted model file."""
    try:
        model = load_model(Path(args.model))
    except LatentLabelError as e:
        print(f"Model invalid: {e}", file=sys.stderr)
        return 1

    print(f"Model valid: {model.n_classes} classes x {model.n_indicators} indicators")
    if args.verbose:
        print(f"  classes: {', '.join(model.class_names)}")
        print(f"  indicators: {', '.join(model.indicator_names)}")
        for key, value in sorted(model.fit_statistics.items()):
            print(f"  {key}: {value}")
    return 0


def cmd_table(args: argparse.Namespace) -> int:
    """Report the conditional probability table of a model."""
    try:
        model = load_model(Path(args.model))
        records, prevalences = cpt.extract_conditional_probabilities(model)
    except LatentLabelError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.format == "md":
        text = cpt.format_markdown(records, prevalences)
    else:
        text = json.dumps(cpt.records_to_rows(records, prevalences), indent=2)

    if args.output:
        with open(args.output, 'w') as f:
            f.write(text)
        print(f"Table written to {args.output}")
    else:
        print(text)
    return 0


def cmd_infer(args: argparse.Namespace) -> int:
    """Compute posterior soft labels for a CSV batch of subjects."""
    try:
        cfg = settings_module.load_inference_settings(
            Path(args.config) if args.config else None
        )
        model = load_model(Path(args.model))
        selected = _split_names(args.indicators)
        id_column = args.id_column or cfg["id_column"]

        subjects = batches.load_subjects_csv(
            Path(args.subjects),
            id_column=id_column,
            indicators=selected if selected is not None else model.indicator_names,
        )
        batch = posterior.compute_posteriors(
            model,
            subjects,
            selected_indicators=selected,
            target_class=args.target_class,
            epsilon=args.epsilon if args.epsilon is not None else cfg["epsilon"],
            missing=args.missing or cfg["missing_policy"],
            on_degenerate=args.on_degenerate or cfg["degenerate_policy"],
            shard_size=args.shard_size if args.shard_size is not None else cfg["shard_size"],
            workers=args.workers if args.workers is not None else cfg["workers"],
        )
    except LatentLabelError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.output:
        if args.format == "json":
            batches.write_posteriors_json(batch, Path(args.output))
        else:
            batches.write_posteriors_csv(batch, Path(args.output))
        print(f"Computed posteriors for {len(batch)} subject(s) -> {args.output}")
    else:
        print(json.dumps(batches.nan_to_none(batches.posterior_rows(batch)), indent=2))

    if batch.degenerate_subjects:
        print(
            f"Warning: {len(batch.degenerate_subjects)} degenerate subject(s): "
            f"{', '.join(str(s) for s in batch.degenerate_subjects)}",
            file=sys.stderr,
        )
    return 0


def main(argv: Optional[list] = None) -> int:
    """Main CLI entrypoint."""
    parser = argparse.ArgumentParser(
        prog="latent-labels",
        description="Posterior soft labels from imperfect diagnostic tests"
    )

    parser.add_argument(
        "--config",
        help="Path to inference settings (default: config/inference.yaml)"
    )
    parser.add_argument(
        "-v", "--verbose",
        action="store_true",
        help="Verbose output"
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    # validate command
    validate_parser = subparsers.add_parser("validate", help="Validate a fitted model")
    validate_parser.add_argument("--model", required=True, help="Fitted model JSON")
    validate_parser.set_defaults(func=cmd_validate)

    # table command
    table_parser = subparsers.add_parser("table", help="Show conditional probability table")
    table_parser.add_argument("--model", required=True, help="Fitted model JSON")
    table_parser.add_argument("--format", choices=["json", "md"], default="json")
    table_parser.add_argument("--output", "-o", help="Output file")
    table_parser.set_defaults(func=cmd_table)

    # infer command
    infer_parser = subparsers.add_parser("infer", help="Compute posterior soft labels")
    infer_parser.add_argument("--model", required=True, help="Fitted model JSON")
    infer_parser.add_argument("--subjects", required=True, help="CSV of subject test results")
    infer_parser.add_argument("--id-column", help="Subject identifier column")
    infer_parser.add_argument("--indicators", help="Comma-separated indicators to condition on")
    infer_parser.add_argument("--target-class", help="Only report this class's probability")
    infer_parser.add_argument("--epsilon", type=float, help="Probability clamp")
    infer_parser.add_argument("--missing", choices=sorted(posterior.MISSING_POLICIES),
                              help="Policy for empty results")
    infer_parser.add_argument("--on-degenerate", choices=sorted(posterior.DEGENERATE_POLICIES),
                              help="Policy for subjects whose likelihoods all underflow")
    infer_parser.add_argument("--shard-size", type=int, help="Subjects per worker shard")
    infer_parser.add_argument("--workers", type=int, help="Worker processes for sharding")
    infer_parser.add_argument("--format", choices=["csv", "json"], default="csv")
    infer_parser.add_argument("--output", "-o", help="Output file")
    infer_parser.set_defaults(func=cmd_infer)

    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 0

    configure_logging(logging.DEBUG if args.verbose else logging.INFO)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
