"""
lakedeploy CLI - deploy an analytics environment and configure its data plane.

Usage:
    lakedeploy <command> [args]
"""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from lakedeploy import __version__


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="lakedeploy", description="lakedeploy CLI")
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    subparsers = parser.add_subparsers(dest="command")

    deploy_parser = subparsers.add_parser(
        "deploy",
        help="Deploy resources and run post-deployment steps"
    )
    deploy_parser.add_argument("config", help="Path to deployment configuration file")
    deploy_parser.add_argument("--skip-if-applied", action="store_true",
                               help="Reuse deployments that already succeeded instead of re-creating them")
    deploy_parser.add_argument("--log-file", help="Append-only log file (default: LAKEDEPLOY_LOG_FILE or lakedeploy.log)")
    deploy_parser.add_argument("--output", choices=["text", "json"], default="text",
                               help="Output format")
    deploy_parser.add_argument("-v", "--verbose", action="store_true",
                               help="Show detailed progress and outputs")

    plan_parser = subparsers.add_parser(
        "plan",
        help="Preview resource order and post-deployment steps (dry-run)"
    )
    plan_parser.add_argument("config", help="Path to deployment configuration file")
    plan_parser.add_argument("--output", choices=["text", "json"], default="text",
                             help="Output format")

    return parser


def main(argv: Sequence[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "deploy":
        from lakedeploy.cli.deploy import deploy_command
        sys.exit(deploy_command(
            config_path=args.config,
            skip_if_applied=args.skip_if_applied,
            log_file=args.log_file,
            output_format=args.output,
            verbose=args.verbose,
        ))

    if args.command == "plan":
        from lakedeploy.cli.plan import plan_command
        sys.exit(plan_command(
            config_path=args.config,
            output_format=args.output,
        ))

    parser.print_help()
    sys.exit(1)


if __name__ == "__main__":
    main()
