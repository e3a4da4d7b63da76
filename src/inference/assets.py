"""
Model asset fetching.

Models are referenced by URI: a local path is read directly, an http(s) URL is
downloaded in chunks with percentage progress reported to the caller.
"""

from __future__ import annotations

import logging
import os
from typing import Callable, Optional

import requests

from models.errors import ModelLoadError

# (text, percent or None)
ProgressCallback = Callable[[str, Optional[float]], None]

CHUNK_SIZE = 64 * 1024


def is_remote(uri: str) -> bool:
    return uri.startswith(("http://", "https://"))


def fetch_model(
    uri: str,
    label: str = "Loading model",
    progress: Optional[ProgressCallback] = None,
    timeout: float = 60.0,
) -> bytes:
    """
    Return the raw bytes of a model file.

    Raises:
        ModelLoadError: On a missing file or any download failure.
    """
    if progress:
        progress(label, 0.0)

    if not is_remote(uri):
        if not os.path.exists(uri):
            raise ModelLoadError(f"Model file not found: {uri}")
        with open(uri, "rb") as f:
            data = f.read()
        if progress:
            progress(label, 100.0)
        logging.info(f"Loaded model {uri} ({len(data)} bytes)")
        return data

    try:
        with requests.get(uri, stream=True, timeout=timeout) as resp:
            resp.raise_for_status()
            total = int(resp.headers.get("Content-Length") or 0)
            received = 0
            chunks = []
            last_pct = -1
            for chunk in resp.iter_content(chunk_size=CHUNK_SIZE):
                if not chunk:
                    continue
                chunks.append(chunk)
                received += len(chunk)
                if progress and total:
                    pct = int(received * 100 / total)
                    if pct != last_pct:
                        progress(label, float(min(pct, 100)))
                        last_pct = pct
    except requests.RequestException as e:
        raise ModelLoadError(f"Failed to download {uri}: {e}") from e

    data = b"".join(chunks)
    if not data:
        raise ModelLoadError(f"Empty model download: {uri}")
    if progress:
        progress(label, 100.0)
    logging.info(f"Downloaded model {uri} ({len(data)} bytes)")
    return data
