"""Run the webhook API (with its delivery worker) under uvicorn.

Usage:
    python -m blaze_webhooks --host 0.0.0.0 --port 8000
"""

from __future__ import annotations

import argparse

import uvicorn

from blaze_webhooks.api import create_app
from blaze_webhooks.config import Settings


def main(argv: list[str] | None = None) -> None:
    parser = argparse.ArgumentParser(prog="blaze-webhooks", description=__doc__)
    parser.add_argument("--host", default="127.0.0.1")
    parser.add_argument("--port", type=int, default=8000)
    args = parser.parse_args(argv)

    settings = Settings()
    # Logging is configured in the app lifespan
    uvicorn.run(create_app(settings), host=args.host, port=args.port, log_config=None)


if __name__ == "__main__":
    main()
