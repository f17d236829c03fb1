from __future__ import annotations

import argparse
from typing import Optional

import uvicorn

from app import app as fastapi_app, load_config
from superthanks_logging import get_logger

logger = get_logger("superthanks.web.run")


def main(argv: Optional[list[str]] = None) -> None:
    server = load_config().get("server", {})
    parser = argparse.ArgumentParser(description="Run the Super Thanks scanner API.")
    parser.add_argument("--host", default=server.get("host", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(server.get("port", 8000)))
    args = parser.parse_args(argv)

    logger.info("Serving scanner API on %s:%d", args.host, args.port)
    uvicorn.run(fastapi_app, host=args.host, port=args.port, reload=False)


if __name__ == "__main__":
    main()
