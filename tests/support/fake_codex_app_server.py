"""Stand-in for ``codex app-server`` used by the tests.

Behaviour is selected with ``FAKE_CODEX_MODE``:

* ``ok`` (default): answer every call.
* ``rpc-error``: answer ``account/rateLimits/read`` with a JSON-RPC error.
* ``hang``: never answer ``account/read``.
* ``exit``: exit with status 2 after ``initialize``.

``FAKE_CODEX_EMAIL`` overrides the account email (empty string omits it) and
``FAKE_CODEX_LOG`` names a file that receives one received method per line.
"""

import json
import os
import sys
import time

MODE = os.environ.get("FAKE_CODEX_MODE", "ok")
EMAIL = os.environ.get("FAKE_CODEX_EMAIL", "rpc@example.com")
LOG_PATH = os.environ.get("FAKE_CODEX_LOG")


def _write(payload):
    sys.stdout.write(json.dumps(payload) + "\n")
    sys.stdout.flush()


def _log(method):
    if LOG_PATH:
        with open(LOG_PATH, "a", encoding="utf-8") as handle:
            handle.write(method + "\n")


def _account():
    account = {"type": "chatgpt", "planType": "plus"}
    if EMAIL:
        account["email"] = EMAIL
    return {"account": account, "requiresOpenaiAuth": True}


def _rate_limits():
    return {
        "rateLimits": {
            "primary": {"usedPercent": 12.5, "windowDurationMins": 300, "resetsAt": 1700003600},
            "secondary": {"usedPercent": 40.0, "windowDurationMins": 10080, "resetsAt": 1700600000},
            "credits": {"hasCredits": True, "unlimited": False, "balance": "1,234.50"},
        }
    }


def main():
    sys.stderr.write("fake codex app-server starting\n")
    sys.stderr.flush()
    for line in sys.stdin:
        line = line.strip()
        if not line:
            continue
        message = json.loads(line)
        method = message.get("method")
        _log(method)
        request_id = message.get("id")
        if request_id is None:
            continue

        if method == "initialize":
            _write({"method": "codex/event", "params": {"msg": "hello"}})
            sys.stdout.write("not json at all\n")
            _write({"id": request_id, "result": {"userAgent": "fake-codex/0.0.0"}})
            if MODE == "exit":
                sys.stderr.write("fake codex: fatal\n")
                sys.stderr.flush()
                time.sleep(0.05)
                sys.exit(2)
        elif method == "account/read":
            if MODE == "hang":
                continue
            _write({"id": request_id, "result": _account()})
        elif method == "account/rateLimits/read":
            if MODE == "rpc-error":
                sys.stderr.write("fake codex: rate limits backend unavailable\n")
                sys.stderr.flush()
                time.sleep(0.05)
                _write({"id": request_id, "error": {"code": -32603, "message": "rate limits unavailable"}})
                continue
            _write({"id": request_id, "result": _rate_limits()})
        else:
            _write({"id": request_id, "error": {"code": -32601, "message": f"unknown method {method}"}})


if __name__ == "__main__":
    main()
