# clients/http.py
import os

import requests
from tenacity import Retrying, retry_if_exception, stop_after_attempt, wait_exponential_jitter

API_URL = os.getenv("STOREFRONT_API_URL", "http://localhost:3000").rstrip("/")
HTTP_TIMEOUT = float(os.getenv("HTTP_TIMEOUT", "10"))
HTTP_RETRY_ATTEMPTS = int(os.getenv("HTTP_RETRY_ATTEMPTS", "3"))
# `add` is not idempotent server-side.
HTTP_WRITE_ATTEMPTS = int(os.getenv("HTTP_WRITE_ATTEMPTS", "1"))
USER_AGENT = os.getenv("STOREFRONT_USER_AGENT", "storefront-reconciler/0.1")


def new_session() -> requests.Session:
    session = requests.Session()
    session.headers.update({"User-Agent": USER_AGENT, "Accept": "application/json"})
    return session


def is_transient(exc: BaseException) -> bool:
    """Connection problems, timeouts and 5xx are worth another try; 4xx are not."""
    if isinstance(exc, (requests.ConnectionError, requests.Timeout)):
        return True
    if isinstance(exc, requests.HTTPError):
        resp = exc.response
        return resp is None or resp.status_code >= 500
    return False


def retrying(attempts: int = HTTP_RETRY_ATTEMPTS) -> Retrying:
    return Retrying(
        retry=retry_if_exception(is_transient),
        wait=wait_exponential_jitter(initial=0.5, max=5),
        stop=stop_after_attempt(max(1, attempts)),
        reraise=True,
    )
