from __future__ import annotations

import argparse
import signal
import sys

import uvicorn

from facewatch.config.loader import load_settings
from facewatch.main import create_app


def _build_parser(prog: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog=prog, description="facewatch camera face-detection worker")
    subparsers = parser.add_subparsers(dest="command")

    serve = subparsers.add_parser("serve", help="Run the worker control API")
    serve.add_argument("--backend-url", default=None, help="Backend base URL (env BACKEND_URL, default http://localhost:8000)")
    serve.add_argument("--bind", default=None, help="Bind host (env BIND, default 0.0.0.0)")
    serve.add_argument("--port", type=int, default=None, help="Bind port (env PORT, default 8080)")
    serve.add_argument("--log-level", default=None, help="Log level (env LOG_LEVEL, default info)")
    serve.add_argument("--log-dir", default=None, help="Directory for rotating JSON logs")
    return parser


def _run(parsed: argparse.Namespace) -> int:
    settings = load_settings(
        backend_url=parsed.backend_url,
        bind=parsed.bind,
        port=parsed.port,
        log_level=parsed.log_level,
        log_dir=parsed.log_dir,
    )
    app = create_app(settings)

    print(f"facewatch worker starting on {settings.bind}:{settings.port}")
    config = uvicorn.Config(
        app,
        host=settings.bind,
        port=settings.port,
        log_level=settings.log_level,
        workers=1,
        timeout_graceful_shutdown=2,
    )
    server = uvicorn.Server(config)
    previous_handlers: dict[int, object] = {}
    run_exit_code: int | None = None

    def _begin_worker_shutdown() -> None:
        worker_state = getattr(getattr(app, "state", None), "worker", None)
        if worker_state is not None:
            worker_state.begin_shutdown()

    def _request_exit(signum: int, _frame: object) -> None:
        if signum in {signal.SIGINT, signal.SIGTERM}:
            _begin_worker_shutdown()
            server.should_exit = True

    for sig in (signal.SIGINT, signal.SIGTERM):
        try:
            previous_handlers[sig] = signal.getsignal(sig)
            signal.signal(sig, _request_exit)
        except (AttributeError, ValueError):
            continue

    try:
        try:
            server.run()
        except KeyboardInterrupt:
            server.should_exit = True
        except SystemExit as exc:
            if server.should_exit:
                run_exit_code = 0
            else:
                run_exit_code = exc.code if isinstance(exc.code, int) else 1
    finally:
        worker_state = getattr(getattr(app, "state", None), "worker", None)
        if worker_state is not None:
            worker_state.shutdown()
        for sig, handler in previous_handlers.items():
            try:
                signal.signal(sig, handler)
            except (AttributeError, ValueError):
                continue
    if run_exit_code is not None:
        return run_exit_code
    if bool(getattr(server, "started", False)) or server.should_exit:
        return 0
    return 1


def main(argv: list[str] | None = None) -> int:
    args = sys.argv[1:] if argv is None else list(argv)
    if not args or args[0].startswith("-"):
        args = ["serve", *args]
    parsed = _build_parser("facewatch").parse_args(args)
    try:
        return _run(parsed)
    except KeyboardInterrupt:
        return 0
    except Exception as exc:
        print(f"[error] {exc}")
        return 2


if __name__ == "__main__":
    raise SystemExit(main())
