"""
SAFE command line: run the core, run one module standalone, or run a module
operation locally.

    safe serve [--host H] [--port P]
    safe serve-module NAME [--host H] [--port P]
    safe modules
    safe run MODULE OPERATION [--payload FILE|-]
"""

from __future__ import annotations

import argparse
import json
import sys
from pathlib import Path
from typing import Any, Sequence

from safe_suite.config import get_settings
from safe_suite.core.exceptions import ModuleInputError, SafeError
from safe_suite.modules import BUILTIN_MODULES, create_module
from safe_suite.safe_logging import configure_structlog, get_logger

logger = get_logger("safe_suite.cli")


def _print_json(obj: Any, stream: Any = None) -> None:
    print(json.dumps(obj, indent=2, sort_keys=False), file=stream or sys.stdout)


def _read_payload(source: str | None) -> dict[str, Any]:
    if source is None:
        return {}
    try:
        raw = sys.stdin.read() if source == "-" else Path(source).read_text(encoding="utf-8")
    except OSError as e:
        raise ModuleInputError(f"Cannot read payload: {e}") from e
    if not raw.strip():
        return {}
    try:
        payload = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ModuleInputError(f"Payload is not valid JSON: {e}") from e
    if not isinstance(payload, dict):
        raise ModuleInputError("Payload must be a JSON object")
    return payload


def cmd_serve(args: argparse.Namespace) -> int:
    import uvicorn

    from safe_suite.api_server.server import create_app

    settings = get_settings()
    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info("core_server_starting", host=host, port=port)
    uvicorn.run(create_app(settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def cmd_serve_module(args: argparse.Namespace) -> int:
    import uvicorn

    from safe_suite.modules.service import create_module_app

    settings = get_settings()
    module = create_module(args.name)
    host = args.host or settings.api_host
    port = args.port or settings.api_port
    logger.info("module_server_starting", module=module.name, host=host, port=port)
    uvicorn.run(create_module_app(module, settings), host=host, port=port, log_level=settings.log_level.lower())
    return 0


def cmd_modules(args: argparse.Namespace) -> int:
    rows = []
    for name, cls in BUILTIN_MODULES.items():
        module = cls()
        rows.append(
            {
                "name": name,
                "description": module.description,
                "version": module.version,
                "operations": {op: spec.description for op, spec in module.operations().items()},
            }
        )
    _print_json(rows)
    return 0


def cmd_run(args: argparse.Namespace) -> int:
    module = create_module(args.module)
    payload = _read_payload(args.payload)
    _print_json(module.run(args.operation, payload))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="safe", description="SAFE AI-safety suite.")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("serve", help="Run the core service.")
    p.add_argument("--host", default=None, help="Bind host (default SAFE_API_HOST).")
    p.add_argument("--port", type=int, default=None, help="Bind port (default SAFE_API_PORT).")
    p.set_defaults(func=cmd_serve)

    p = sub.add_parser("serve-module", help="Run one built-in module as a standalone service.")
    p.add_argument("name", choices=sorted(BUILTIN_MODULES), help="Module name.")
    p.add_argument("--host", default=None)
    p.add_argument("--port", type=int, default=None)
    p.set_defaults(func=cmd_serve_module)

    p = sub.add_parser("modules", help="List built-in modules and their operations.")
    p.set_defaults(func=cmd_modules)

    p = sub.add_parser("run", help="Run one module operation locally and print the JSON result.")
    p.add_argument("module", help="Module name.")
    p.add_argument("operation", help="Operation name.")
    p.add_argument("--payload", default=None, help="JSON payload file, or - for stdin.")
    p.set_defaults(func=cmd_run)
    return parser


def main(argv: Sequence[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    try:
        settings = get_settings()
        # serve commands log to stdout; run and modules print their result there
        stream = sys.stdout if args.command in ("serve", "serve-module") else sys.stderr
        configure_structlog(settings.log_level, settings.log_format, stream=stream)
        return args.func(args)
    except SafeError as e:
        out = {"code": e.code, "detail": e.message}
        errors = getattr(e, "errors", None)
        if errors:
            out["errors"] = errors
        _print_json(out, sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
