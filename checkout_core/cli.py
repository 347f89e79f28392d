"""
Command line entry point.

Usage:
    checkout-core summary
    checkout-core validate [--production]
    checkout-core checklist
    checkout-core health
    checkout-core serve --host 0.0.0.0 --port 8000
"""
import argparse
import asyncio
import json
import sys
from typing import Any, Dict, List, Optional

import structlog

from .context import AppContext
from .errors import ConfigValidationError
from .monitoring.health import HealthCheck
from .monitoring.logging import setup_logging

logger = structlog.get_logger(__name__)


def _print(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _summary(context: AppContext, args: argparse.Namespace) -> int:
    try:
        _print(context.get_config_summary())
    except ConfigValidationError as e:
        _print({"error": str(e), "field": e.field})
        return 1
    return 0


def _validate(context: AppContext, args: argparse.Namespace) -> int:
    result: Dict[str, Any] = {"valid": True}

    try:
        context.get_config()
    except ConfigValidationError as e:
        result = {"valid": False, "error": str(e), "field": e.field}
    else:
        services = context.validate_services()
        result["services"] = services
        result["valid"] = services["valid"]

    if args.production:
        report = context.validate_production_config()
        result["production"] = report.model_dump()
        result["valid"] = result["valid"] and report.is_valid

    _print(result)
    return 0 if result["valid"] else 1


def _checklist(context: AppContext, args: argparse.Namespace) -> int:
    _print(context.get_production_checklist())
    return 0


def _health(context: AppContext, args: argparse.Namespace) -> int:
    health = asyncio.run(HealthCheck(context).check_all())
    _print(health)
    return 0 if health["status"] == "healthy" else 1


def _serve(context: AppContext, args: argparse.Namespace) -> int:
    import uvicorn

    from .api.main import create_app

    uvicorn.run(create_app(context), host=args.host, port=args.port)
    return 0


COMMANDS = {
    "summary": _summary,
    "validate": _validate,
    "checklist": _checklist,
    "health": _health,
    "serve": _serve,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="checkout-core",
        description="Inspect and run the checkout core",
    )
    parser.add_argument("--log-level", default="WARNING", help="Logging level for CLI output")
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("summary", help="Print the active configuration summary")

    validate = subparsers.add_parser("validate", help="Validate configuration and providers")
    validate.add_argument(
        "--production",
        action="store_true",
        help="Also require the production environment variables",
    )

    subparsers.add_parser("checklist", help="Print the production readiness checklist")
    subparsers.add_parser("health", help="Run readiness checks")

    serve = subparsers.add_parser("serve", help="Run the HTTP API")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)

    return parser


def main(argv: Optional[List[str]] = None, context: Optional[AppContext] = None) -> int:
    """
    Run a CLI command.

    Args:
        argv: Arguments, defaulting to ``sys.argv[1:]``
        context: Context to inspect, defaulting to one over the process environment

    Returns:
        int: Process exit code
    """
    args = build_parser().parse_args(argv)
    setup_logging(log_level=args.log_level, stream=sys.stderr)
    context = context or AppContext()
    return COMMANDS[args.command](context, args)


if __name__ == "__main__":
    sys.exit(main())
