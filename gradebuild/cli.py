from __future__ import annotations

import argparse
import json
import sys
from collections.abc import Sequence

from .config import BuildSettings
from .errors import ConfigurationError
from .models import BuildResult
from .pipeline import Compiler


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="gradebuild")
    subparsers = parser.add_subparsers(dest="command")

    interfaces_parser = subparsers.add_parser(
        "interfaces",
        help="Compile the contract sources of an assignment",
    )
    interfaces_parser.add_argument("source", help="Directory of contract sources")
    interfaces_parser.add_argument("--dest", default=None)
    interfaces_parser.add_argument(
        "--factory",
        action="store_true",
        help="Generate FactoryInterface/Factory stubs from the compiled contracts",
    )

    tests_parser = subparsers.add_parser(
        "tests",
        help="Compile contracts together with the test sources",
    )
    tests_parser.add_argument("sources", nargs="+")
    tests_parser.add_argument("--dest", default=None)

    submission_parser = subparsers.add_parser(
        "submission",
        help="Compile a submission and check every contract is implemented",
    )
    submission_parser.add_argument(
        "sources",
        nargs="+",
        help="Contract directory first, then tests and the submission",
    )
    submission_parser.add_argument("--dest", default=None)
    return parser


def print_result(result: BuildResult) -> None:
    print(json.dumps(result.model_dump(), indent=2, ensure_ascii=False))


def main(argv: Sequence[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    compiler = Compiler(BuildSettings.from_env())
    try:
        if args.command == "interfaces":
            result = compiler.compile_interfaces(
                args.source,
                args.dest,
                synthesize_factory=args.factory,
            )
        elif args.command == "tests":
            result = compiler.compile_tests(args.sources, args.dest)
        else:
            result = compiler.compile_submission(args.sources, args.dest)
    except ConfigurationError as error:
        print(f"error: {error}", file=sys.stderr)
        return 2

    print_result(result)
    return 0 if result.success else 1


if __name__ == "__main__":
    sys.exit(main())
