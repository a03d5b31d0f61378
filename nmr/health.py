from __future__ import annotations

import time

import httpx


def check_health(url: str, timeout_s: float = 2.0) -> tuple[bool, str, float | None]:
    """Probe the reverse proxy after a reload.

    Any non-5xx answer counts as serving; the proxy may legitimately return
    404 or a redirect on the probe path.
    Returns (is_serving, message, latency_ms).
    """
    start = time.time()
    try:
        with httpx.Client(timeout=timeout_s, follow_redirects=False) as client:
            resp = client.get(url)
        latency_ms = round((time.time() - start) * 1000.0, 2)
        if resp.status_code >= 500:
            return False, f"HTTP {resp.status_code}", latency_ms
        return True, f"HTTP {resp.status_code}", latency_ms
    except (httpx.ConnectError, httpx.ReadTimeout):
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, "No response", latency_ms
    except httpx.HTTPError as e:
        latency_ms = round((time.time() - start) * 1000.0, 2)
        return False, f"Error: {type(e).__name__}: {e}", latency_ms
