"""HTTP クライアント：タイムアウト・リトライ・指数バックオフ。"""
import os
import time
from typing import Any, Optional

import requests

from tposlive.tpos.errors import TposApiError

def get_timeout_sec() -> int:
    return int(os.getenv("HTTP_TIMEOUT_SEC", "30"))

def get_retry_max() -> int:
    return int(os.getenv("HTTP_RETRY_MAX", "3"))

def get_retry_backoff_sec() -> float:
    return float(os.getenv("HTTP_RETRY_BACKOFF_SEC", "2"))

def _check(r: requests.Response, url: str) -> None:
    """2xx 以外は本文付きの TposApiError にする。"""
    if 200 <= r.status_code < 300:
        return
    raise TposApiError(
        f"TPOS API error: {r.status_code} - {r.text[:500]}",
        status_code=r.status_code,
        body=r.text,
    )

def _decode(r: requests.Response) -> Any:
    if not r.content:
        return {}
    try:
        return r.json()
    except ValueError as e:
        raise TposApiError(
            f"Invalid JSON response: {e}", status_code=r.status_code, body=r.text
        ) from e

def download_bytes(
    url: str,
    timeout_sec: Optional[int] = None,
    retry_max: Optional[int] = None,
    retry_backoff_sec: Optional[float] = None,
    session: Optional[requests.Session] = None,
) -> bytes:
    """URL からバイト列を取得。リトライ付き。"""
    timeout_sec = timeout_sec or get_timeout_sec()
    retry_max = get_retry_max() if retry_max is None else retry_max
    retry_backoff_sec = retry_backoff_sec or get_retry_backoff_sec()
    use_session = session or requests
    last_exc: Optional[Exception] = None
    for attempt in range(retry_max + 1):
        try:
            r = use_session.get(url, timeout=timeout_sec)
            r.raise_for_status()
            return r.content
        except (requests.RequestException, OSError) as e:
            last_exc = e
            if attempt < retry_max:
                time.sleep(retry_backoff_sec * (2 ** attempt))
    raise last_exc  # type: ignore

def post_json(
    url: str,
    json_body: Any,
    headers: Optional[dict[str, str]] = None,
    timeout_sec: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> Any:
    """POST application/json。リトライは行わない（TPOS 側で重複作成されるため）。"""
    timeout_sec = timeout_sec or get_timeout_sec()
    use_session = session or requests
    h = dict(headers or {})
    if "Content-Type" not in h and "content-type" not in h:
        h["Content-Type"] = "application/json"
    try:
        r = use_session.post(url, json=json_body, headers=h, timeout=timeout_sec)
    except requests.RequestException as e:
        raise TposApiError(f"TPOS request failed: {e}", payload=json_body) from e
    try:
        _check(r, url)
    except TposApiError as e:
        raise e.with_payload(json_body)
    return _decode(r)

def get_json(
    url: str,
    params: Optional[dict[str, Any]] = None,
    headers: Optional[dict[str, str]] = None,
    timeout_sec: Optional[int] = None,
    session: Optional[requests.Session] = None,
) -> Any:
    """GET で JSON を取得。"""
    timeout_sec = timeout_sec or get_timeout_sec()
    use_session = session or requests
    try:
        r = use_session.get(url, params=params, headers=headers or {}, timeout=timeout_sec)
    except requests.RequestException as e:
        raise TposApiError(f"TPOS request failed: {e}") from e
    _check(r, url)
    return _decode(r)
