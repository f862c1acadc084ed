import asyncio
import os
from typing import Dict, Optional, Tuple

import httpx


def _env_float(name: str, default: float) -> float:
    raw = os.environ.get(name)
    try:
        return float(raw) if raw else default
    except ValueError:
        return default


async def fetch_document(url: str, config: Optional[Dict] = None) -> Tuple[int, str]:
    """
    GET a document and return (status, text) without raising on non-2xx.

    config keys (each overrides its environment default):
      - timeout  (MDLANG_HTTP_TIMEOUT, 5.0 seconds)
      - retries  (MDLANG_HTTP_RETRIES, 2) transport failures only
      - backoff  (MDLANG_HTTP_BACKOFF, 0.2 seconds, doubled per attempt)
      - headers
    """
    cfg = dict(config or {})
    timeout = float(cfg.pop('timeout', _env_float('MDLANG_HTTP_TIMEOUT', 5.0)))
    retries = int(cfg.pop('retries', _env_float('MDLANG_HTTP_RETRIES', 2)))
    backoff = float(cfg.pop('backoff', _env_float('MDLANG_HTTP_BACKOFF', 0.2)))
    headers = dict(cfg.pop('headers', {}))
    headers.setdefault("Accept", "text/markdown, text/plain;q=0.9, */*;q=0.1")

    async with httpx.AsyncClient(timeout=timeout, follow_redirects=True) as client:
        last_exc = None
        for attempt in range(retries + 1):
            try:
                resp = await client.request('GET', url, headers=headers)
                return int(resp.status_code), resp.text
            except httpx.HTTPError as e:
                last_exc = e
                if attempt < retries:
                    await asyncio.sleep(backoff * (2 ** attempt))
                    continue
                raise last_exc
