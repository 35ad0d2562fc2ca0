# api_client.py
import logging
import os
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional

import requests
from dotenv import load_dotenv

load_dotenv()

API_BASE_URL = os.getenv("API_BASE_URL", "http://localhost:5000/api")
API_TIMEOUT_SECONDS = float(os.getenv("API_TIMEOUT_SECONDS", "30"))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")

GENERIC_ERROR_MESSAGE = "An unexpected error occurred."
NETWORK_ERROR_MESSAGE = "Network error. Please check your connection and try again."
SESSION_EXPIRED_MESSAGE = "Session expired. Please login again."

STATUS_FALLBACK_MESSAGES = {
    403: "You do not have permission to perform this action.",
    404: "The requested resource was not found.",
    409: "A conflict occurred. The data might already exist.",
    422: "Validation failed.",
    500: "Server error occurred. Please try again later.",
}

logger = logging.getLogger(__name__)


def configure_logging() -> None:
    logging.basicConfig(
        level=LOG_LEVEL.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


class ApiError(Exception):
    """
    Non-2xx response, timeout or network failure.
    `message` is already suitable for showing to the operator.
    """

    def __init__(
            self,
            message: str,
            status_code: Optional[int] = None,
            errors: Optional[List[str]] = None,
    ):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.errors = errors or []


class SessionExpiredError(Exception):
    """Raised on 401 for an authenticated session, after the session is cleared."""


@dataclass
class ApiSession:
    token: Optional[str] = None
    user: Dict[str, Any] = field(default_factory=dict)

    @property
    def is_authenticated(self) -> bool:
        return bool(self.token)

    @property
    def display_name(self) -> str:
        staff = self.user.get("staffInfo") or {}
        return staff.get("fullName") or self.user.get("username") or "-"

    def start(self, token: str, user: Optional[Dict[str, Any]] = None) -> None:
        self.token = token
        self.user = user or {}

    def clear(self) -> None:
        self.token = None
        self.user = {}

    def has_permission(self, module: str, action: str) -> bool:
        if not self.is_authenticated:
            return False
        if self.user.get("role") == "admin":
            return True

        # staff logins carry "module:action" strings, users carry module objects
        for perm in self.user.get("permissions") or []:
            if isinstance(perm, str):
                if perm == f"{module}:{action}":
                    return True
            elif perm.get("module") == module:
                return action in (perm.get("actions") or [])
        return False


def extract_error_message(response: requests.Response) -> tuple[str, List[str]]:
    """
    Pull a readable message out of an error response.
    Returns (message, errors) where errors is the server's validation list, if any.
    """
    try:
        body = response.json()
    except ValueError:
        body = None

    errors: List[str] = []
    message = None

    if isinstance(body, dict):
        raw_errors = body.get("errors")
        if isinstance(raw_errors, list):
            errors = [str(e) for e in raw_errors]
        message = body.get("message")

    if errors and (not message or message in ("Validation failed", "Validation error")):
        message = "\n".join(errors)

    if not message:
        message = STATUS_FALLBACK_MESSAGES.get(
            response.status_code,
            f"Request failed with status {response.status_code}",
        )

    return message, errors


class ApiClient:
    def __init__(
            self,
            session: ApiSession,
            base_url: str = API_BASE_URL,
            timeout: float = API_TIMEOUT_SECONDS,
            http: Optional[requests.Session] = None,
    ):
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.http = http or requests.Session()

    def clone(self) -> "ApiClient":
        """A client with its own connection pool sharing this client's session."""
        return ApiClient(self.session, base_url=self.base_url, timeout=self.timeout)

    def _url(self, path: str) -> str:
        return f"{self.base_url}/{path.lstrip('/')}"

    def request(
            self,
            method: str,
            path: str,
            *,
            json: Any = None,
            params: Optional[Dict[str, Any]] = None,
            files: Any = None,
            data: Any = None,
    ) -> Any:
        headers = {}
        had_token = self.session.is_authenticated
        if had_token:
            headers["Authorization"] = f"Bearer {self.session.token}"

        url = self._url(path)
        logger.debug("API request: %s %s", method.upper(), url)

        try:
            resp = self.http.request(
                method.upper(),
                url,
                json=json,
                params=params,
                files=files,
                data=data,
                headers=headers,
                timeout=self.timeout,
            )
        except requests.Timeout as e:
            logger.warning("API timeout: %s %s (%ss)", method.upper(), url, self.timeout)
            raise ApiError(NETWORK_ERROR_MESSAGE) from e
        except requests.RequestException as e:
            logger.warning("API request failed: %s %s: %s", method.upper(), url, e)
            raise ApiError(NETWORK_ERROR_MESSAGE) from e

        logger.debug("API response: %s %s -> %d", method.upper(), url, resp.status_code)

        if resp.status_code == 401 and had_token:
            logger.info("Session rejected by server, clearing credentials")
            self.session.clear()
            raise SessionExpiredError(SESSION_EXPIRED_MESSAGE)

        if not resp.ok:
            message, errors = extract_error_message(resp)
            logger.warning(
                "API error: %s %s -> %d: %s", method.upper(), url, resp.status_code, message
            )
            raise ApiError(message, status_code=resp.status_code, errors=errors)

        if not resp.content:
            return None

        try:
            return resp.json()
        except ValueError:
            return resp.text

    def get(self, path: str, params: Optional[Dict[str, Any]] = None) -> Any:
        return self.request("GET", path, params=params)

    def post(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request("POST", path, json=json, **kwargs)

    def put(self, path: str, json: Any = None, **kwargs) -> Any:
        return self.request("PUT", path, json=json, **kwargs)

    def patch(self, path: str, json: Any = None) -> Any:
        return self.request("PATCH", path, json=json)

    def delete(self, path: str) -> Any:
        return self.request("DELETE", path)
