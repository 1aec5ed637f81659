# Vaultix Storage - Cloud Blob Storage Client
#
# Stores backup artifacts in a remote blob service reached over HTTPS:
#
#   PUT    {base_url}/blobs/{name}   upload (application/octet-stream)
#   GET    {base_url}/blobs/{name}   download
#   GET    {base_url}/blobs          list   -> {"blobs": [{"name", "size"}]}
#   DELETE {base_url}/blobs/{name}   delete
#
# Bearer-token auth. Failures are mapped onto three distinguishable errors:
#   401/403           -> AuthExpiredError        (re-authenticate, never retried)
#   404               -> CloudNotFoundError      (never retried)
#   network/429/5xx   -> TransientNetworkError   (retried with backoff)
#
# Every operation is idempotent on the server side, so retries are safe.

import logging
import time
from typing import Dict, List, Optional

import httpx

from ..exceptions import AuthExpiredError, CloudNotFoundError, NetworkError, TransientNetworkError

logger = logging.getLogger(__name__)

# Retry configuration
MAX_RETRIES = 3
INITIAL_BACKOFF_SEC = 1.0
BACKOFF_MULTIPLIER = 2.0
REQUEST_TIMEOUT_SEC = 60


class CloudStorage:
    """Interface for remote blob storage of backup artifacts."""

    def upload(self, name: str, data: bytes) -> None:
        raise NotImplementedError

    def download(self, name: str) -> bytes:
        raise NotImplementedError

    def list(self) -> List[str]:
        raise NotImplementedError

    def delete(self, name: str) -> None:
        raise NotImplementedError


class HttpCloudStorage(CloudStorage):
    """Blob storage over HTTPS using httpx.

    Usage::

        cloud = HttpCloudStorage("https://blobs.example.com/v1", token="...")
        cloud.upload("backup_123.vbak", blob)
    """

    def __init__(
        self,
        base_url: str,
        token: Optional[str] = None,
        max_retries: int = MAX_RETRIES,
        initial_backoff: float = INITIAL_BACKOFF_SEC,
    ):
        self._base_url = base_url.rstrip("/")
        self._token = token
        self._max_retries = max_retries
        self._initial_backoff = initial_backoff

    def set_token(self, token: str) -> None:
        """Swap in a fresh access token after AuthExpiredError."""
        self._token = token

    # ------------------------------------------------------------------
    # CloudStorage interface
    # ------------------------------------------------------------------

    def upload(self, name: str, data: bytes) -> None:
        self._request(
            "PUT", f"/blobs/{name}", content=data,
            headers={"Content-Type": "application/octet-stream"},
        )

    def download(self, name: str) -> bytes:
        return self._request("GET", f"/blobs/{name}").content

    def list(self) -> List[str]:
        resp = self._request("GET", "/blobs")
        try:
            payload = resp.json()
        except ValueError as exc:
            raise NetworkError(f"Malformed blob listing: {exc}") from exc
        return [entry["name"] for entry in payload.get("blobs", [])]

    def delete(self, name: str) -> None:
        self._request("DELETE", f"/blobs/{name}")

    # ------------------------------------------------------------------
    # HTTP helpers
    # ------------------------------------------------------------------

    def _build_headers(self, extra: Optional[Dict[str, str]] = None) -> Dict[str, str]:
        headers: Dict[str, str] = {"User-Agent": "Vaultix/1.0"}
        if self._token:
            headers["Authorization"] = f"Bearer {self._token}"
        if extra:
            headers.update(extra)
        return headers

    def _request(
        self,
        method: str,
        path: str,
        content: Optional[bytes] = None,
        headers: Optional[Dict[str, str]] = None,
    ) -> httpx.Response:
        """Execute an HTTP request with retry + exponential backoff.

        Retries on network errors, 429 (rate limit), and 5xx errors.
        Raises AuthExpiredError / CloudNotFoundError immediately.
        """
        url = f"{self._base_url}{path}"
        backoff = self._initial_backoff
        last_error = "no attempt made"

        for attempt in range(1, self._max_retries + 1):
            try:
                resp = httpx.request(
                    method,
                    url,
                    headers=self._build_headers(headers),
                    content=content,
                    timeout=REQUEST_TIMEOUT_SEC,
                )
            except httpx.HTTPError as exc:
                last_error = str(exc) or type(exc).__name__
            else:
                if resp.status_code < 400:
                    return resp
                if resp.status_code in (401, 403):
                    raise AuthExpiredError(
                        f"Cloud storage rejected credentials ({resp.status_code}) for {method} {path}"
                    )
                if resp.status_code == 404:
                    raise CloudNotFoundError(f"Cloud blob not found: {path}")
                if resp.status_code != 429 and resp.status_code < 500:
                    raise NetworkError(f"Cloud storage error {resp.status_code} for {method} {path}")
                last_error = f"HTTP {resp.status_code}"
                retry_after = resp.headers.get("Retry-After")
                if retry_after:
                    try:
                        backoff = max(backoff, float(retry_after))
                    except ValueError:
                        pass

            if attempt < self._max_retries:
                logger.warning(
                    "Cloud %s %s failed (%s), retrying in %.1fs (attempt %d/%d)",
                    method, path, last_error, backoff, attempt, self._max_retries,
                )
                time.sleep(backoff)
                backoff *= BACKOFF_MULTIPLIER

        raise TransientNetworkError(
            f"Cloud {method} {path} failed after {self._max_retries} attempts: {last_error}"
        )
