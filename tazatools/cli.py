"""CLI entrypoint for tazatools."""
from __future__ import annotations
import argparse
import json
import os
import pathlib
import sys


def build_parser():
    p = argparse.ArgumentParser(prog="tazatools", description="TazaPay tool invocation service")
    p.add_argument("--config", help="Path to YAML config (defaults to $TAZATOOLS_CONFIG)")
    p.add_argument("--sandbox", action="store_true", help="Use the bundled offline sandbox worker instead of Docker")
    p.add_argument(
        "--log-dir",
        help="Directory to write log file (tazatools.log). If not set, only stderr is used.",
    )
    p.add_argument("--timeout-ms", type=float, default=None, help="Per-call timeout in milliseconds")
    sub = p.add_subparsers(dest="command")
    serve = sub.add_parser("serve", help="Start HTTP server")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8000)
    sub.add_parser("tools", help="List tools discovered from the worker")
    ask = sub.add_parser("ask", help="Run the tool implied by a free-text request")
    ask.add_argument("text", nargs="+")
    ask.add_argument("--json", action="store_true", help="Print the raw outcome as JSON")
    chat = sub.add_parser("chat", help="Answer a message like the chat assistant would")
    chat.add_argument("text", nargs="+")
    chat.add_argument("--docs", action="store_true", help="Documentation mode instead of tool mode")
    return p


def _build_service(args):
    from .core.config_loader import load_config, sandbox_launch_spec
    from .core.service import ToolInvocationService

    config = load_config(args.config)
    spec = sandbox_launch_spec(config) if args.sandbox else None
    if not args.sandbox and not config.has_credentials:
        print("warning: TAZAPAY_API_KEY / TAZAPAY_API_SECRET not set; the worker may reject calls", file=sys.stderr)
    return config, ToolInvocationService(config, launch_spec=spec)


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 1
    if getattr(args, "log_dir", None):
        from .core.logging import configure_file_logging

        log_dir_path = pathlib.Path(args.log_dir)
        log_dir_path.mkdir(parents=True, exist_ok=True)
        os.environ.setdefault("TAZATOOLS_LOG_DIR", str(log_dir_path.resolve()))
        # loggers created before this point (package import) need the handler too
        configure_file_logging(os.environ["TAZATOOLS_LOG_DIR"])

    from .core.errors import ToolError, describe_error

    try:
        config, service = _build_service(args)
    except ToolError as e:
        print(describe_error(e), file=sys.stderr)
        return 2

    if args.command == "serve":
        import uvicorn
        from .server import create_app

        app = create_app(config=config, service=service)
        uvicorn.run(app, host=args.host, port=args.port)
        return 0

    try:
        service.start()
    except ToolError as e:
        print(describe_error(e), file=sys.stderr)
        return 2
    try:
        if args.command == "tools":
            for t in service.list_tools():
                print(f"{t.name}\t{t.description}")
            return 0
        text = " ".join(args.text)
        if args.command == "ask":
            outcome = service.run_query(text, timeout_ms=args.timeout_ms)
            if outcome is None:
                print("No relevant tool found.", file=sys.stderr)
                return 3
            if args.json:
                print(json.dumps(outcome.to_payload(), indent=2))
            else:
                print(f"[{outcome.tool.name}] {json.dumps(outcome.arguments)}")
                print(outcome.result.content)
            return 1 if outcome.result.is_error else 0
        # chat
        from .assistant import ChatAssistant
        from .docs_client import DocsClient

        docs = DocsClient(config.docs_base_url, timeout_s=config.docs_timeout_s)
        try:
            print(ChatAssistant(service, docs, timeout_ms=args.timeout_ms).respond(text, agent_mode=not args.docs))
        finally:
            docs.close()
        return 0
    finally:
        service.stop()


if __name__ == "__main__":  # pragma: no cover
    sys.exit(main())
