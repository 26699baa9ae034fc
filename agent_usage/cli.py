from __future__ import annotations

import argparse
import os

import uvicorn


def _parse_args() -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Serve Codex usage telemetry over HTTP.")
    parser.add_argument("--host", default=os.getenv("HOST", "127.0.0.1"))
    parser.add_argument("--port", type=int, default=int(os.getenv("PORT", "8787")))
    parser.add_argument(
        "--log-level",
        default=os.getenv("LOG_LEVEL", "info"),
        choices=["critical", "error", "warning", "info", "debug"],
    )

    return parser.parse_args()


def main() -> None:
    args = _parse_args()

    uvicorn.run("agent_usage.main:app", host=args.host, port=args.port, log_level=args.log_level)


if __name__ == "__main__":
    main()
