from __future__ import annotations

import json
import os
import sys
import urllib.request


def main() -> int:
    port = os.environ.get("PORT", "8000")
    prefix = os.environ.get("API_PREFIX", "").rstrip("/")
    url = f"http://localhost:{port}{prefix}/health"
    try:
        req = urllib.request.Request(url, headers={"Accept": "application/json"})
        with urllib.request.urlopen(req, timeout=3) as resp:
            if resp.status != 200:
                return 1
            body = resp.read()
            if body:
                try:
                    json.loads(body.decode("utf-8"))
                except ValueError:
                    # Non-JSON body on a 200 still counts as healthy
                    pass
        return 0
    except Exception:
        return 1


if __name__ == "__main__":
    sys.exit(main())
