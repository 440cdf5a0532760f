"""HTTP client with retries and rate limiting."""
import time
import logging
import requests

logger = logging.getLogger("guardian.http")


class APIError(Exception):
    """API request error with status code and response body."""
    def __init__(self, message, status_code=None, response_body=None, source=None):
        super().__init__(message)
        self.status_code = status_code
        self.response_body = response_body
        self.source = source


class HTTPClient:
    """requests.Session wrapper with bounded transport retries and rate limiting."""

    RETRYABLE_STATUS = {429, 500, 502, 503, 504}
    NON_RETRYABLE_STATUS = {400, 401, 403, 404}

    def __init__(self, base_url, rate_limiter=None, timeout=15, max_retries=2,
                 source=None, sleep=time.sleep):
        self.base_url = base_url.rstrip("/")
        self.rate_limiter = rate_limiter
        self.timeout = timeout
        self.max_retries = max_retries
        self.source = source or self.base_url
        self._sleep = sleep
        self.session = requests.Session()
        self.session.headers.update({"User-Agent": "DrawdownGuardian/1.0"})

    def get(self, path="", params=None):
        """GET with retry. Returns decoded JSON (or text)."""
        return self._request("GET", path, params=params)

    def post(self, path="", json_body=None):
        """POST a JSON body with retry."""
        return self._request("POST", path, json_body=json_body)

    def _url(self, path):
        return f"{self.base_url}/{path.lstrip('/')}" if path else self.base_url

    def _request(self, method, path, params=None, json_body=None):
        url = self._url(path)
        last_error = None

        for attempt in range(self.max_retries + 1):
            if self.rate_limiter:
                self.rate_limiter.wait()

            try:
                start = time.monotonic()
                resp = self.session.request(method, url, params=params, json=json_body,
                                            timeout=self.timeout)
                latency = int((time.monotonic() - start) * 1000)
                logger.debug(f"{method} {url} -> {resp.status_code} ({latency}ms)")

                if resp.status_code == 200:
                    try:
                        return resp.json()
                    except ValueError:
                        return resp.text

                if resp.status_code in self.NON_RETRYABLE_STATUS:
                    raise APIError(
                        f"HTTP {resp.status_code} from {url}",
                        status_code=resp.status_code,
                        response_body=resp.text,
                        source=self.source,
                    )

                if resp.status_code in self.RETRYABLE_STATUS:
                    retry_after = resp.headers.get("Retry-After")
                    wait = float(retry_after) if retry_after else min(2 ** attempt * 2, 60)
                    logger.warning(f"Retryable {resp.status_code} from {url}, waiting {wait:.1f}s (attempt {attempt + 1})")
                    last_error = APIError(f"HTTP {resp.status_code} from {url}",
                                          status_code=resp.status_code, source=self.source)
                    if attempt < self.max_retries:
                        self._sleep(wait)
                    continue

                raise APIError(f"Unexpected HTTP {resp.status_code} from {url}",
                               status_code=resp.status_code, source=self.source)

            except requests.exceptions.RequestException as e:
                logger.warning(f"Request error for {url}: {e} (attempt {attempt + 1})")
                last_error = APIError(str(e), source=self.source)
                if attempt < self.max_retries:
                    self._sleep(min(2 ** attempt * 2, 60))

        raise last_error or APIError(f"Max retries exceeded for {url}", source=self.source)

    def close(self):
        self.session.close()
