"""Client for the backend-as-a-service REST API.

Covers the three surfaces the storefront uses: PostgREST tables
(``/rest/v1``), object storage (``/storage/v1``) and password auth
(``/auth/v1``).
"""

import logging
from dataclasses import dataclass
from typing import Any

import httpx

from storefront.config import Settings, get_settings
from storefront.errors import (
    NETWORK_ERROR_CODE,
    NOT_FOUND_CODE,
    TIMEOUT_CODE,
    BackendError,
)

logger = logging.getLogger(__name__)

# PostgREST returns this media type for single-object responses
SINGLE_OBJECT_MEDIA_TYPE = "application/vnd.pgrst.object+json"


@dataclass(frozen=True)
class QueryResult:
    """Rows returned by a table query.

    Attributes:
        data: Returned rows
        count: Exact row count across all pages, when requested
    """

    data: list[dict[str, Any]]
    count: int | None = None


def parse_content_range(header: str | None) -> int | None:
    """Extract the total from a ``Content-Range`` header (``0-24/573``)."""
    if not header or "/" not in header:
        return None
    total = header.rsplit("/", 1)[-1]
    if total == "*":
        return None
    try:
        return int(total)
    except ValueError:
        return None


class BackendClient:
    """Async client for the backend REST API.

    Every request carries the project's anon key; an access token, when set,
    replaces it in the ``Authorization`` header so row-level security sees the
    signed-in user.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        access_token: str | None = None,
    ) -> None:
        """Initialize the backend client.

        Args:
            settings: Application settings. Defaults to the process settings.
            access_token: Optional user access token for authenticated calls.
        """
        self.settings = settings or get_settings()
        self.base_url = self.settings.supabase_url.rstrip("/")
        self.api_key = self.settings.supabase_anon_key
        self.access_token = access_token
        self._http_client: httpx.AsyncClient | None = None

    async def __aenter__(self) -> "BackendClient":
        """Enter async context manager."""
        self._http_client = httpx.AsyncClient(
            timeout=httpx.Timeout(self.settings.supabase_timeout),
            follow_redirects=True,
        )
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc_val: BaseException | None,
        exc_tb: Any,
    ) -> None:
        """Exit async context manager."""
        if self._http_client:
            await self._http_client.aclose()
            self._http_client = None

    def with_access_token(self, access_token: str) -> "BackendClient":
        """Client acting as a signed-in user, sharing this client's connection pool.

        The returned client must not be used as a context manager; the pool
        belongs to this client.
        """
        clone = BackendClient(self.settings, access_token=access_token)
        clone._http_client = self._http_client
        return clone

    @property
    def _client(self) -> httpx.AsyncClient:
        """Get the HTTP client, raising if not in context manager."""
        if self._http_client is None:
            raise RuntimeError("BackendClient must be used as an async context manager")
        return self._http_client

    def _headers(
        self,
        extra: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> dict[str, str]:
        token = access_token or self.access_token or self.api_key
        headers = {
            "apikey": self.api_key,
            "Authorization": f"Bearer {token}",
            "x-application-name": self.settings.application_name,
        }
        if extra:
            headers.update(extra)
        return headers

    @staticmethod
    def _error_from_response(response: httpx.Response) -> BackendError:
        """Build a BackendError from a PostgREST/storage/auth error body."""
        try:
            body = response.json()
        except ValueError:
            body = {}
        if not isinstance(body, dict):
            body = {}

        message = (
            body.get("message")
            or body.get("msg")
            or body.get("error_description")
            or body.get("error")
            or response.text
            or f"HTTP {response.status_code}"
        )
        code = body.get("code") or body.get("error_code") or body.get("statusCode")
        return BackendError(
            str(message),
            code=str(code) if code is not None else str(response.status_code),
            status=response.status_code,
            details=body.get("details"),
            hint=body.get("hint"),
        )

    async def _request(
        self,
        method: str,
        path: str,
        params: dict[str, Any] | None = None,
        json_data: Any = None,
        content: bytes | None = None,
        headers: dict[str, str] | None = None,
        access_token: str | None = None,
    ) -> httpx.Response:
        """Make a request against the backend.

        Args:
            method: HTTP method (GET, POST, etc.)
            path: API path (without base URL)
            params: Optional query parameters
            json_data: Optional JSON body
            content: Optional raw body
            headers: Extra headers
            access_token: Token overriding the client's own for this call

        Returns:
            The successful response.

        Raises:
            BackendError: If the request fails or the backend rejects it.
        """
        url = f"{self.base_url}{path}"

        try:
            response = await self._client.request(
                method,
                url,
                headers=self._headers(headers, access_token),
                params=params,
                json=json_data,
                content=content,
            )
        except httpx.TimeoutException as e:
            logger.error("Backend request timed out: %s %s", method, path)
            raise BackendError(
                f"Request timed out: {method} {path}", code=TIMEOUT_CODE
            ) from e
        except httpx.RequestError as e:
            logger.error("Backend network error: %s %s - %s", method, path, e)
            raise BackendError(
                f"Network request failed: {e}", code=NETWORK_ERROR_CODE
            ) from e

        if response.is_error:
            error = self._error_from_response(response)
            logger.warning(
                "Backend error: %s %s - %s %s",
                method,
                path,
                response.status_code,
                error.code,
            )
            raise error

        return response

    # Tables

    async def select(
        self,
        table: str,
        columns: str = "*",
        filters: dict[str, str] | None = None,
        order: str | None = None,
        ascending: bool = False,
        start: int | None = None,
        end: int | None = None,
        limit: int | None = None,
        count: bool = False,
        single: bool = False,
    ) -> QueryResult:
        """Select rows from a table.

        Args:
            table: Table name
            columns: PostgREST column list
            filters: Column -> PostgREST operator expression (e.g. ``eq.5``)
            order: Column to order by
            ascending: Sort direction
            start: First row index of the requested range (inclusive)
            end: Last row index of the requested range (inclusive)
            limit: Maximum number of rows (alternative to a range)
            count: Request an exact total count
            single: Expect exactly one row. Zero rows raise a not-found error.

        Returns:
            The matching rows and, if requested, the total count.
        """
        params: dict[str, Any] = {"select": columns}
        if filters:
            params.update(filters)
        if order:
            params["order"] = f"{order}.{'asc' if ascending else 'desc'}"
        if limit is not None:
            params["limit"] = limit

        headers: dict[str, str] = {}
        if start is not None and end is not None:
            headers["Range-Unit"] = "items"
            headers["Range"] = f"{start}-{end}"
        if count:
            headers["Prefer"] = "count=exact"
        if single:
            headers["Accept"] = SINGLE_OBJECT_MEDIA_TYPE

        response = await self._request(
            "GET", f"/rest/v1/{table}", params=params, headers=headers
        )

        body = response.json()
        rows = [body] if single else (body or [])
        total = parse_content_range(response.headers.get("content-range")) if count else None
        return QueryResult(data=rows, count=total)

    async def insert(
        self,
        table: str,
        row: dict[str, Any],
        columns: str = "*",
    ) -> dict[str, Any]:
        """Insert a row and return its stored representation."""
        response = await self._request(
            "POST",
            f"/rest/v1/{table}",
            params={"select": columns},
            json_data=row,
            headers={
                "Prefer": "return=representation",
                "Accept": SINGLE_OBJECT_MEDIA_TYPE,
            },
        )
        return response.json()  # type: ignore[no-any-return]

    async def update(
        self,
        table: str,
        values: dict[str, Any],
        filters: dict[str, str],
        columns: str = "*",
    ) -> dict[str, Any]:
        """Update the single row matching ``filters`` and return it."""
        response = await self._request(
            "PATCH",
            f"/rest/v1/{table}",
            params={"select": columns, **filters},
            json_data=values,
            headers={
                "Prefer": "return=representation",
                "Accept": SINGLE_OBJECT_MEDIA_TYPE,
            },
        )
        return response.json()  # type: ignore[no-any-return]

    async def delete(
        self,
        table: str,
        filters: dict[str, str],
    ) -> int:
        """Delete the rows matching ``filters``.

        Returns:
            Number of deleted rows.

        Raises:
            BackendError: With the not-found code if nothing was deleted.
        """
        response = await self._request(
            "DELETE",
            f"/rest/v1/{table}",
            params={"select": "id", **filters},
            headers={"Prefer": "return=representation"},
        )
        deleted = response.json() or []
        if not deleted:
            raise BackendError(
                "The result contains 0 rows",
                code=NOT_FOUND_CODE,
                status=response.status_code,
            )
        return len(deleted)

    # Storage

    async def upload_object(
        self,
        bucket: str,
        key: str,
        content: bytes,
        content_type: str,
        cache_control: str,
        upsert: bool = False,
    ) -> str:
        """Store an object in a bucket.

        Returns:
            The object's full path as reported by the store.
        """
        response = await self._request(
            "POST",
            f"/storage/v1/object/{bucket}/{key}",
            content=content,
            headers={
                "Content-Type": content_type,
                "cache-control": f"max-age={cache_control}",
                "x-upsert": "true" if upsert else "false",
            },
        )
        body = response.json() if response.content else {}
        return str(body.get("Key") or f"{bucket}/{key}")

    def get_public_url(self, bucket: str, key: str) -> str:
        """Public URL of an object in a public bucket."""
        if not bucket or not key:
            return ""
        return f"{self.base_url}/storage/v1/object/public/{bucket}/{key}"

    async def remove_objects(self, bucket: str, keys: list[str]) -> list[dict[str, Any]]:
        """Delete objects from a bucket."""
        response = await self._request(
            "DELETE",
            f"/storage/v1/object/{bucket}",
            json_data={"prefixes": keys},
        )
        return response.json() if response.content else []

    # Auth

    async def sign_in_with_password(self, email: str, password: str) -> dict[str, Any]:
        """Exchange email and password for a session."""
        response = await self._request(
            "POST",
            "/auth/v1/token",
            params={"grant_type": "password"},
            json_data={"email": email, "password": password},
        )
        return response.json()  # type: ignore[no-any-return]

    async def get_user(self, access_token: str) -> dict[str, Any]:
        """Fetch the user that owns ``access_token``; the backend verifies it."""
        response = await self._request(
            "GET", "/auth/v1/user", access_token=access_token
        )
        return response.json()  # type: ignore[no-any-return]

    async def sign_out(self, access_token: str) -> None:
        """Revoke the session behind ``access_token``."""
        await self._request("POST", "/auth/v1/logout", access_token=access_token)
