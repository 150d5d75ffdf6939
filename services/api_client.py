"""
Python client for the help desk JSON API
"""
import requests
from requests.adapters import HTTPAdapter
from urllib3.util.retry import Retry

from config import Config
from utils.logger import get_logger


NETWORK_ERROR = {"message": "Network error. Please check your connection."}


class HelpDeskAPI:
    """Thin wrapper over the ``/api`` routes.

    Every call returns ``{"data": ...}`` on success or ``{"error": ...}`` otherwise;
    it never raises for HTTP or network failures.
    """

    def __init__(self, base_url=None, token_provider=None, timeout=(3, 8), session=None):
        self.base_url = (base_url or Config.HELPDESK_API_URL).rstrip("/")
        self.token_provider = token_provider
        self.timeout = timeout
        self.logger = get_logger()
        self.session = session or self._build_session()

        self.auth = _AuthAPI(self)
        self.issues = _IssuesAPI(self)
        self.users = _UsersAPI(self)
        self.payments = _PaymentsAPI(self)

    @staticmethod
    def _build_session():
        retry = Retry(
            total=3,
            backoff_factor=0.5,
            status_forcelist=[429, 500, 502, 503, 504],
            allowed_methods=frozenset(["GET"]),
            # hand the last 5xx back so its body reaches the caller
            raise_on_status=False
        )
        session = requests.Session()
        adapter = HTTPAdapter(max_retries=retry)
        session.mount("http://", adapter)
        session.mount("https://", adapter)
        session.headers.update({
            "User-Agent": "CoHubHelpDesk/1.0",
            "Accept": "application/json",
        })
        return session

    def _token(self):
        if not self.token_provider:
            return None
        try:
            return self.token_provider()
        except Exception as err:
            self.logger.error(f"Error getting auth token: {err}")
            return None

    def request(self, method, endpoint, params=None, json=None):
        headers = {"Content-Type": "application/json"}
        token = self._token()
        if token:
            headers["Authorization"] = f"Bearer {token}"
        try:
            response = self.session.request(
                method, f"{self.base_url}{endpoint}",
                params=params, json=json, headers=headers, timeout=self.timeout
            )
            data = response.json()
        except (requests.RequestException, ValueError) as err:
            self.logger.error(f"API request error: {err}")
            return {"error": dict(NETWORK_ERROR)}
        if not response.ok:
            return {"error": data}
        return {"data": data}


class _AuthAPI:
    def __init__(self, api):
        self.api = api

    def get_profile(self):
        return self.api.request("GET", "/auth/me")

    def update_profile(self, data):
        return self.api.request("PUT", "/auth/profile", json=data)


class _IssuesAPI:
    def __init__(self, api):
        self.api = api

    def get_all(self, params=None):
        return self.api.request("GET", "/issues", params=params)

    def get_by_id(self, issue_id):
        return self.api.request("GET", f"/issues/{issue_id}")

    def create(self, data):
        return self.api.request("POST", "/issues", json=data)

    def update(self, issue_id, data):
        return self.api.request("PUT", f"/issues/{issue_id}", json=data)

    def delete(self, issue_id):
        return self.api.request("DELETE", f"/issues/{issue_id}")


class _UsersAPI:
    def __init__(self, api):
        self.api = api

    def get_all(self, params=None):
        return self.api.request("GET", "/users", params=params)


class _PaymentsAPI:
    def __init__(self, api):
        self.api = api

    def get_all(self, params=None):
        return self.api.request("GET", "/payments", params=params)

    def create(self, payment_data):
        return self.api.request("POST", "/payments", json=payment_data)

    def get_one(self, payment_id):
        return self.api.request("GET", f"/payments/{payment_id}")
