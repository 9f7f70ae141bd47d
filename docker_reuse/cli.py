from __future__ import annotations

import argparse
import os
import sys

from pydantic import ValidationError as RequestValidationError

from docker_reuse.errors import DockerReuseError
from docker_reuse.models import STRATEGIES, ReuseRequest, model_dump
from docker_reuse.reuse import compute_only, find_or_build_and_push
from docker_reuse.runtime import configure_logging, dump_json

APP_NAME = "docker-reuse"
STRATEGY_ENV = "DOCKER_REUSE_STRATEGY"


def _add_common(parser: argparse.ArgumentParser) -> None:
    parser.add_argument(
        "-f",
        "--file",
        dest="dockerfile",
        default=None,
        metavar="DOCKERFILE",
        help="Pathname of the Dockerfile (default: PATH/Dockerfile)",
    )
    parser.add_argument(
        "--build-arg",
        dest="build_args",
        action="append",
        default=[],
        metavar="NAME[=VALUE]",
        help="Build argument; without a value it is taken from the environment. Repeatable.",
    )
    parser.add_argument(
        "--strategy",
        default=os.environ.get(STRATEGY_ENV, "auto"),
        help=f"Source identity strategy: {', '.join(STRATEGIES)} (default: ${STRATEGY_ENV} or auto)",
    )
    parser.add_argument("-q", "--quiet", action="store_true", help="Suppress build output")
    parser.add_argument(
        "--json",
        action="store_true",
        help="Print a machine-readable JSON summary to stdout.",
    )
    parser.add_argument("path", metavar="PATH", help="Docker build context directory")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=APP_NAME,
        description="Find or build a Docker image tagged with a fingerprint of its inputs",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    build_parser_ = subparsers.add_parser("build", help="Find or build and push the image, then update FILE")
    _add_common(build_parser_)
    build_parser_.add_argument("image", metavar="IMAGE", help="Name of the image to find or build")
    build_parser_.add_argument("template", metavar="FILE", help="File to update with the new image tag")
    build_parser_.add_argument(
        "--tag",
        dest="extra_tags",
        action="append",
        default=[],
        help="Additional tag for a newly built image. Repeatable.",
    )
    build_parser_.add_argument(
        "--placeholder",
        default=None,
        help="Text in FILE to replace instead of existing references to IMAGE",
    )

    fingerprint_parser = subparsers.add_parser("fingerprint", help="Print the fingerprint of PATH and exit")
    _add_common(fingerprint_parser)

    return parser


def _run_fingerprint(args: argparse.Namespace) -> int:
    fingerprint = compute_only(
        args.path,
        args.dockerfile,
        args.build_args,
        args.strategy,
        quiet=args.quiet,
    )
    if args.json:
        print(dump_json({"fingerprint": fingerprint.digest, "lines": list(fingerprint.lines)}))
    else:
        print(fingerprint.digest)
    return 0


def _run_build(args: argparse.Namespace, parser: argparse.ArgumentParser) -> int:
    try:
        request = ReuseRequest(
            context_dir=args.path,
            image_name=args.image,
            template_path=args.template,
            dockerfile=args.dockerfile,
            placeholder=args.placeholder,
            build_args=args.build_args,
            extra_tags=args.extra_tags,
            strategy=args.strategy,
            quiet=args.quiet,
        )
    except RequestValidationError as exc:
        parser.error(str(exc))
    response = find_or_build_and_push(request)
    if args.json:
        print(dump_json(model_dump(response)))
    else:
        print(response.image_ref)
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.strategy not in STRATEGIES:
        parser.error(f"invalid strategy '{args.strategy}' (choose from {', '.join(STRATEGIES)})")

    configure_logging(quiet=args.quiet)

    try:
        if args.command == "fingerprint":
            return _run_fingerprint(args)
        if args.command == "build":
            return _run_build(args, parser)
    except DockerReuseError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    parser.error(f"Unknown command: {args.command}")
    return 1


if __name__ == "__main__":
    raise SystemExit(main())
