"""
Registry authentication

Registries either issue an API key from /api/auth/login (token auth) or
have no such endpoint and accept HTTP basic credentials on every request.
login() tries the former and falls back to the latter.
"""

import logging
from typing import Optional, Tuple

import requests

from .config import AuthConfig, Config
from .errors import AuthError

logger = logging.getLogger(__name__)


class AuthService:
    """Stores and checks registry credentials"""

    def __init__(self, config: Config, session: Optional[requests.Session] = None):
        self.config = config
        self.session = session or requests.Session()

    @property
    def registry_url(self) -> str:
        return self.config.registry_url.rstrip('/')

    def login(self, username: str, password: str) -> AuthConfig:
        """Authenticate against the registry and save the credentials"""
        username = username.strip()
        if not username:
            raise AuthError("username cannot be empty")
        if not password:
            raise AuthError("password cannot be empty")

        auth = self._token_login(username, password)
        if auth is None:
            self._check_basic(username, password)
            auth = AuthConfig(
                username=username,
                password=password,
                registry=self.config.registry_url,
                auth_type="basic"
            )

        self.config.save_auth(auth)
        logger.info("Authenticated as %s using %s authentication", auth.username, auth.auth_type)
        return auth

    def _token_login(self, username: str, password: str) -> Optional[AuthConfig]:
        """Token auth, or None when the registry has no login endpoint"""
        try:
            response = self.session.post(
                f"{self.registry_url}/api/auth/login",
                json={"username": username, "password": password},
                timeout=30
            )
        except requests.RequestException as e:
            raise AuthError(f"failed to connect to registry: {e}") from e

        if response.status_code == 404:
            return None

        if response.status_code != 200:
            detail = _error_detail(response)
            if response.status_code == 401:
                raise AuthError(f"authentication failed: {detail or 'invalid username or password'}")
            raise AuthError(f"login failed: {detail or f'status {response.status_code}'}")

        try:
            data = response.json()
        except ValueError as e:
            raise AuthError("failed to parse login response") from e

        if not data.get("api_key"):
            raise AuthError("received empty API key from registry")

        if data.get("message"):
            logger.info("%s", data["message"])

        return AuthConfig(
            username=data.get("username") or username,
            api_key=data["api_key"],
            registry=self.config.registry_url,
            auth_type="token"
        )

    def _check_basic(self, username: str, password: str) -> None:
        try:
            response = self.session.get(
                f"{self.registry_url}/api/health",
                auth=(username, password),
                timeout=10
            )
        except requests.RequestException as e:
            raise AuthError(f"failed to connect to registry: {e}") from e

        if response.status_code != 200:
            raise AuthError(f"registry health check failed with status {response.status_code}")

    def logout(self) -> None:
        self.config.clear_auth()
        logger.info("Logged out")

    def is_authenticated(self) -> Tuple[bool, Optional[AuthConfig]]:
        """Whether usable credentials for the configured registry are stored"""
        auth = self.config.load_auth()
        if auth is None or not auth.username:
            return False, None

        if auth.registry != self.config.registry_url:
            return False, auth
        if auth.auth_type == "token" and not auth.api_key:
            return False, auth
        if auth.auth_type == "basic" and not auth.password:
            return False, auth
        if auth.auth_type not in ("token", "basic"):
            return False, auth

        return True, auth

    def auth_config(self) -> AuthConfig:
        authenticated, auth = self.is_authenticated()
        if not authenticated:
            if auth is not None and auth.registry != self.config.registry_url:
                raise AuthError(
                    f"stored credentials are for {auth.registry}, not {self.config.registry_url}"
                )
            raise AuthError("not authenticated - run 'skald login' first")
        return auth

    def validate(self) -> None:
        """Check stored token credentials with the registry; basic auth is checked on use"""
        auth = self.auth_config()
        if auth.auth_type != "token":
            return

        try:
            response = self.session.get(
                f"{self.registry_url}/api/auth/validate",
                headers={"Authorization": f"Bearer {auth.api_key}"},
                timeout=30
            )
        except requests.RequestException as e:
            raise AuthError(f"failed to validate authentication: {e}") from e

        if response.status_code == 401:
            self.config.clear_auth()
            raise AuthError("authentication expired - please run 'skald login' again")
        # No validation endpoint: assume the token is good
        if response.status_code in (200, 404):
            return
        raise AuthError(f"authentication validation failed with status {response.status_code}")


def _error_detail(response: requests.Response) -> str:
    try:
        data = response.json()
    except ValueError:
        return ""
    return data.get("error", "") if isinstance(data, dict) else ""
