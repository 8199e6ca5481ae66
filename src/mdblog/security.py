"""Access control for the admin pages and the admin JSON API."""

import secrets

from fastapi import HTTPException, Request, Security
from fastapi.security import HTTPBasic, HTTPBasicCredentials
from fastapi.security.api_key import APIKeyHeader
from starlette.status import HTTP_401_UNAUTHORIZED, HTTP_403_FORBIDDEN, HTTP_404_NOT_FOUND

API_KEY_NAME = "X-Admin-Key"
api_key_header = APIKeyHeader(name=API_KEY_NAME, auto_error=False)
basic_auth = HTTPBasic(auto_error=False, realm="mdblog admin")


class AdminGuard:
    """Dependency guarding the admin routes.

    With an API key configured, scripts send it in X-Admin-Key and browsers
    send it as the HTTP Basic password (any user name). Unauthenticated
    admin pages answer 401 with a Basic challenge so the browser prompts
    for it; the JSON API answers 403. Without a key, the admin surface is
    only served to hosts containing "localhost" and looks like a 404 to
    everyone else.
    """

    def __init__(self, api_key: str = "", local_host: str = "localhost"):
        self.api_key = api_key
        self.local_host = local_host

    def _matches(self, candidate: str | None) -> bool:
        return candidate is not None and secrets.compare_digest(
            candidate.encode("utf-8"), self.api_key.encode("utf-8")
        )

    def __call__(
        self,
        request: Request,
        api_key: str | None = Security(api_key_header),
        credentials: HTTPBasicCredentials | None = Security(basic_auth),
    ):
        if self.api_key:
            if self._matches(api_key):
                return api_key
            if credentials is not None and self._matches(credentials.password):
                return credentials.password
            if request.url.path.startswith("/api/"):
                raise HTTPException(
                    status_code=HTTP_403_FORBIDDEN,
                    detail="Could not validate admin key",
                )
            raise HTTPException(
                status_code=HTTP_401_UNAUTHORIZED,
                detail="Admin login required",
                headers={"WWW-Authenticate": 'Basic realm="mdblog admin"'},
            )

        if self.local_host in (request.url.hostname or ""):
            return None
        raise HTTPException(status_code=HTTP_404_NOT_FOUND, detail="Not found")
