"""Application entrypoint for running the MediaRelay backend locally."""

from __future__ import annotations

import argparse
from typing import Optional, Sequence

from .config import DEFAULT_HOST, DEFAULT_LOG_LEVEL, DEFAULT_PORT
from .log_config import verbose_log


def run(
    host: str = DEFAULT_HOST,
    port: int = DEFAULT_PORT,
    log_level: str = DEFAULT_LOG_LEVEL,
) -> None:
    """Run the ASGI application using Uvicorn."""

    import uvicorn

    from .app import app

    verbose_log("server_start", {"host": host, "port": port})
    uvicorn.run(app, host=host, port=port, log_level=log_level)


def main(argv: Optional[Sequence[str]] = None) -> None:
    parser = argparse.ArgumentParser(prog="mediarelay-server")
    parser.add_argument("--host", default=DEFAULT_HOST)
    parser.add_argument("--port", type=int, default=DEFAULT_PORT)
    parser.add_argument("--log-level", default=DEFAULT_LOG_LEVEL)
    args = parser.parse_args(argv)
    run(host=args.host, port=args.port, log_level=args.log_level)


__all__ = ["main", "run"]


if __name__ == "__main__":
    main()
