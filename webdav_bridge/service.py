"""WebDAV client facade.

``WebDAVService`` is the one object application code talks to. It owns a
protocol client bound to the resolved route, a frozen copy of the connection
settings, and converts every failure into an ``OperationResult`` so callers
never need exception handling.
"""

import base64
import logging
import mimetypes
import time
from typing import (
    Any,
    Awaitable,
    Callable,
    List,
    Mapping,
    Optional,
    Sequence,
    Tuple,
    TypeVar,
    Union,
)

import anyio
from httpx import AsyncBaseTransport, AsyncClient, BasicAuth

from webdav_bridge.client import WebDAVClient, create_http_client
from webdav_bridge.config import Settings, get_settings
from webdav_bridge.errors import (
    AlreadyExistsError,
    ConfigIncompleteError,
    NotInitializedError,
    OperationCancelledError,
    classify_error,
)
from webdav_bridge.models import (
    Base64Text,
    BufferLike,
    ConnectionStatus,
    DownloadedFile,
    FileEntry,
    FileKind,
    OperationResult,
    ProxyRoute,
    RawBytes,
    WebDAVConfig,
    to_bytes,
)
from webdav_bridge.observability.metrics import record_facade_operation
from webdav_bridge.observability.tracing import trace_facade_operation
from webdav_bridge.paths import basename, canonical_filename, join_url, normalize_path
from webdav_bridge.routing import resolve_proxy_route

logger = logging.getLogger(__name__)

T = TypeVar("T")

SUPPORTED_EXTENSIONS: Tuple[str, ...] = (".epub", ".pdf", ".txt", ".md", ".markdown")

MIME_TYPES = {
    ".pdf": "application/pdf",
    ".epub": "application/epub+zip",
    ".txt": "text/plain",
    ".md": "text/markdown",
    ".markdown": "text/markdown",
    ".json": "application/json",
}

WritePayload = Union[
    str, bytes, bytearray, memoryview, RawBytes, Base64Text, BufferLike, Any
]
StatusListener = Callable[[ConnectionStatus], None]
ProgressCallback = Callable[[float], None]


def mime_type_for(filename: str) -> str:
    """MIME type for a filename, falling back to ``application/octet-stream``."""
    lowered = filename.lower()
    for extension, mime_type in MIME_TYPES.items():
        if lowered.endswith(extension):
            return mime_type
    guessed, _ = mimetypes.guess_type(lowered)
    return guessed or "application/octet-stream"


def payload_to_bytes(data: WritePayload) -> bytes:
    """Coerce a write payload (text, bytes-like, tagged payload or blob) to bytes."""
    if isinstance(data, str):
        return data.encode("utf-8")
    if isinstance(data, (bytes, bytearray, memoryview)):
        return bytes(data)
    if isinstance(data, (RawBytes, Base64Text, BufferLike)):
        return to_bytes(data)
    read = getattr(data, "read", None)
    if callable(read):
        content = read()
        return content.encode("utf-8") if isinstance(content, str) else bytes(content)
    raise TypeError(f"Unsupported payload type: {type(data).__name__}")


class CancelToken:
    """Cooperative cancellation handle accepted by every facade operation.

    Calling :meth:`cancel` aborts the in-flight round trip of any operation
    holding this token; the operation then returns a failed result.
    """

    def __init__(self):
        self._cancelled = False
        self._event: Optional[anyio.Event] = None

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    def cancel(self) -> None:
        self._cancelled = True
        if self._event is not None:
            self._event.set()

    async def wait(self) -> None:
        if self._cancelled:
            return
        if self._event is None:
            self._event = anyio.Event()
        await self._event.wait()


class WebDAVService:
    """Client facade over the generic WebDAV protocol client.

    Usage:
        async with WebDAVService() as webdav:
            result = await webdav.initialize(config)
            if result.success:
                files = await webdav.list_supported_files("/")

    ``initialize`` and ``disconnect`` swap the cached client/config pair and
    must not run concurrently with other operations on the same instance.
    """

    def __init__(
        self,
        settings: Optional[Settings] = None,
        transport: Optional[AsyncBaseTransport] = None,
        status_listener: Optional[StatusListener] = None,
    ):
        """
        Args:
            settings: Application settings; read from the environment if omitted
            transport: httpx transport override for every outgoing request
            status_listener: Called with the new status after each probe and
                on disconnect; the configuration collaborator persists it
        """
        self._settings = settings or get_settings()
        self._transport = transport
        self._status_listener = status_listener
        self._config: Optional[WebDAVConfig] = None
        self._route: Optional[ProxyRoute] = None
        self._client: Optional[WebDAVClient] = None
        self._http: Optional[AsyncClient] = None
        self._raw: Optional[AsyncClient] = None
        self._status = ConnectionStatus.DISCONNECTED

    async def __aenter__(self) -> "WebDAVService":
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb) -> None:
        await self.disconnect()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def is_initialized(self) -> bool:
        return self._client is not None and self._config is not None

    @property
    def config(self) -> Optional[WebDAVConfig]:
        """Snapshot of the active configuration (a copy; edits have no effect)."""
        return self._config.model_copy(deep=True) if self._config else None

    @property
    def route(self) -> Optional[ProxyRoute]:
        return self._route

    @property
    def connection_status(self) -> ConnectionStatus:
        return self._status

    def _set_status(self, status: ConnectionStatus) -> None:
        self._status = status
        if self._status_listener is not None:
            self._status_listener(status)

    @property
    def _strategy_label(self) -> str:
        return self._route.strategy.value if self._route else "none"

    @property
    def _extra_prefixes(self) -> List[str]:
        prefixes = [self._settings.gateway_prefix, self._settings.dev_proxy_prefix]
        if self._route and self._route.path_prefix:
            prefixes.append(self._route.path_prefix)
        return prefixes

    def _normalize(self, path: Optional[str]) -> str:
        return normalize_path(path, self._extra_prefixes)

    def _canonical(self, entry: FileEntry) -> FileEntry:
        filename = canonical_filename(
            entry.filename, self._settings.gateway_prefix, self._extra_prefixes
        )
        return entry.model_copy(update={"filename": filename})

    def _require_client(self) -> WebDAVClient:
        if self._client is None or self._config is None or self._route is None:
            raise NotInitializedError()
        return self._client

    def _auth_header(self) -> str:
        assert self._config is not None
        token = base64.b64encode(
            f"{self._config.username}:{self._config.password}".encode("utf-8")
        ).decode("ascii")
        return f"Basic {token}"

    async def _close_clients(self) -> None:
        for client in (self._http, self._raw):
            if client is not None:
                await client.aclose()
        self._client = None
        self._http = None
        self._raw = None

    # ------------------------------------------------------------------
    # Operation runner
    # ------------------------------------------------------------------

    async def _bounded(
        self, func: Callable[[], Awaitable[T]], cancel_token: Optional[CancelToken]
    ) -> T:
        """Run ``func`` under the operation timeout and an optional cancel token.

        Raises:
            TimeoutError: When the timeout elapses
            OperationCancelledError: When ``cancel_token`` fires first
        """
        with anyio.fail_after(self._settings.request_timeout):
            if cancel_token is None:
                return await func()
            if cancel_token.cancelled:
                raise OperationCancelledError()

            outcome: dict[str, Any] = {}

            async with anyio.create_task_group() as tg:

                async def run() -> None:
                    try:
                        outcome["value"] = await func()
                    except Exception as e:
                        outcome["error"] = e
                    finally:
                        tg.cancel_scope.cancel()

                async def watch() -> None:
                    await cancel_token.wait()
                    tg.cancel_scope.cancel()

                tg.start_soon(run)
                tg.start_soon(watch)

            if "error" in outcome:
                raise outcome["error"]
            if "value" in outcome:
                return outcome["value"]
            raise OperationCancelledError()

    async def _run(
        self,
        operation: str,
        path: Optional[str],
        func: Callable[[], Awaitable[T]],
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[T]:
        """Execute one facade operation and wrap its outcome in a result."""
        strategy = self._strategy_label
        start_time = time.time()
        status = "error"
        try:
            with trace_facade_operation(operation, strategy, path):
                data = await self._bounded(func, cancel_token)
            status = "success"
            return OperationResult.ok(data)
        except Exception as e:
            error = classify_error(e)
            logger.warning(
                f"WebDAV {operation} failed ({error.category.value}): {error.message}"
            )
            return OperationResult.fail(error.message)
        finally:
            record_facade_operation(
                operation, strategy, time.time() - start_time, status
            )

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def initialize(
        self,
        config: WebDAVConfig,
        route: Optional[ProxyRoute] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[bool]:
        """Validate ``config``, resolve the route, build the client and probe it.

        Args:
            config: Connection settings; a copy is kept, the caller's object
                is never modified
            route: Explicit routing decision from the host; resolved from
                runtime signals when omitted
            cancel_token: Optional cancellation handle for the probe

        Returns:
            ``ok(True)`` once the probe listing of ``/`` succeeded
        """
        missing = config.missing_fields()
        if missing:
            error = ConfigIncompleteError(
                f"WebDAV configuration is incomplete, missing: {', '.join(missing)}"
            )
            logger.warning(error.message)
            return OperationResult.fail(error.message)

        await self._close_clients()
        self._config = config.model_copy(deep=True)
        self._route = route or resolve_proxy_route(self._config, self._settings)
        logger.info(
            f"Initializing WebDAV client ({self._route.strategy.value}) at {self._route.base_url}"
        )

        self._http = create_http_client(
            self._settings,
            base_url=self._route.base_url,
            auth=BasicAuth(self._config.username, self._config.password),
            transport=self._transport,
        )
        self._raw = create_http_client(self._settings, transport=self._transport)
        self._client = WebDAVClient(self._http, root_path=self._route.path_prefix)
        self._set_status(ConnectionStatus.CONNECTING)

        client = self._client

        async def probe() -> bool:
            await client.get_directory_contents("/")
            return True

        result = await self._run("initialize", "/", probe, cancel_token)
        if not result.success:
            await self._close_clients()
            self._config = None
            self._route = None
            self._set_status(ConnectionStatus.ERROR)
            return result

        self._set_status(ConnectionStatus.CONNECTED)
        logger.info("WebDAV client initialized")
        return result

    async def test_connection(
        self, *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[bool]:
        """Re-probe the server by listing ``/``."""

        async def probe() -> bool:
            await self._require_client().get_directory_contents("/")
            return True

        result = await self._run("test_connection", "/", probe, cancel_token)
        if self.is_initialized:
            self._set_status(
                ConnectionStatus.CONNECTED if result.success else ConnectionStatus.ERROR
            )
        return result

    async def disconnect(self) -> None:
        """Drop the client and configuration; later calls report not-initialized."""
        was_initialized = self.is_initialized
        await self._close_clients()
        self._config = None
        self._route = None
        if was_initialized or self._status is not ConnectionStatus.DISCONNECTED:
            self._set_status(ConnectionStatus.DISCONNECTED)
        logger.debug("WebDAV client disconnected")

    # ------------------------------------------------------------------
    # Core operations
    # ------------------------------------------------------------------

    async def list(
        self,
        path: str = "/",
        deep: bool = False,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[List[FileEntry]]:
        """List a directory.

        Every returned ``filename`` is in the public canonical path space
        (gateway prefix + WebDAV-relative path) whatever route produced it,
        so it can be passed straight back to :meth:`read` or :meth:`write`.
        """
        target = self._normalize(path)

        async def op() -> List[FileEntry]:
            client = self._require_client()
            entries = await client.get_directory_contents(target, deep=deep)
            return [self._canonical(entry) for entry in entries]

        return await self._run("list", target, op, cancel_token)

    async def list_supported_files(
        self, path: str = "/", *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[List[FileEntry]]:
        """Recursively list files whose extension is one of ``SUPPORTED_EXTENSIONS``."""
        result = await self.list(path, deep=True, cancel_token=cancel_token)
        if not result.success:
            return result
        return OperationResult.ok(
            [
                entry
                for entry in result.data or []
                if entry.kind is FileKind.FILE
                and entry.basename.lower().endswith(SUPPORTED_EXTENSIONS)
            ]
        )

    async def read(
        self,
        path: str,
        format: str = "text",
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[Union[str, bytes]]:
        """Read a file as text (``str``) or binary (``bytes``).

        Proxied routes fetch the file with a plain authenticated GET against
        the proxy URL; the direct route goes through the protocol client.
        """
        if format not in ("text", "binary"):
            return OperationResult.fail(f"Unsupported read format: {format}")
        target = self._normalize(path)

        async def op() -> Union[str, bytes]:
            client = self._require_client()
            assert self._route is not None and self._raw is not None

            if self._route.strategy.is_proxied:
                response = await self._raw.get(
                    join_url(self._route.base_url, target),
                    headers={"Authorization": self._auth_header()},
                )
                response.raise_for_status()
                return response.text if format == "text" else response.content

            contents = await client.get_file_contents(target, format=format)
            if isinstance(contents, str):
                return contents
            return to_bytes(contents)

        return await self._run("read", target, op, cancel_token)

    async def write(
        self,
        path: str,
        data: WritePayload,
        overwrite: bool = True,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[bool]:
        """Write a file from text, bytes-like, tagged payloads or a readable blob.

        With ``overwrite=False`` an existing target fails the write instead of
        being replaced.
        """
        target = self._normalize(path)

        async def op() -> bool:
            client = self._require_client()
            assert self._route is not None and self._raw is not None
            content = payload_to_bytes(data)
            content_type = mime_type_for(target)

            if not overwrite and await client.exists(target):
                raise AlreadyExistsError(
                    f"'{target}' already exists and overwrite is disabled", 412
                )

            if self._route.strategy.is_proxied:
                headers = {
                    "Authorization": self._auth_header(),
                    "Content-Type": content_type,
                }
                if not overwrite:
                    headers["If-None-Match"] = "*"
                response = await self._raw.put(
                    join_url(self._route.base_url, target),
                    content=content,
                    headers=headers,
                )
                response.raise_for_status()
                return True

            return await client.put_file_contents(
                target, content, overwrite=overwrite, content_type=content_type
            )

        return await self._run("write", target, op, cancel_token)

    async def exists(
        self, path: str, *, cancel_token: Optional[CancelToken] = None
    ) -> bool:
        """Whether ``path`` exists; any failure counts as ``False``."""
        if not self.is_initialized:
            logger.warning("exists() called on an uninitialized WebDAV client")
            return False
        target = self._normalize(path)

        async def op() -> bool:
            return await self._require_client().exists(target)

        result = await self._run("exists", target, op, cancel_token)
        return bool(result.success and result.data)

    # ------------------------------------------------------------------
    # Directory management and sync helpers
    # ------------------------------------------------------------------

    async def stat(
        self, path: str, *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[FileEntry]:
        target = self._normalize(path)

        async def op() -> FileEntry:
            return self._canonical(await self._require_client().stat(target))

        return await self._run("stat", target, op, cancel_token)

    async def create_directory(
        self, path: str, *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[bool]:
        """Create a directory; ``data`` is False when it already existed."""
        target = self._normalize(path)

        async def op() -> bool:
            return await self._require_client().create_directory(target)

        return await self._run("create_directory", target, op, cancel_token)

    async def delete(
        self, path: str, *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[bool]:
        """Delete a file or directory."""
        target = self._normalize(path)

        async def op() -> bool:
            return await self._require_client().delete(target)

        return await self._run("delete", target, op, cancel_token)

    async def ensure_sync_directory(
        self, *, cancel_token: Optional[CancelToken] = None
    ) -> OperationResult[bool]:
        """Create the configured sync directory if it does not exist yet."""

        async def op() -> bool:
            client = self._require_client()
            assert self._config is not None
            sync_path = self._normalize(self._config.sync_path)
            if sync_path == "/" or await client.exists(sync_path):
                return True
            logger.info(f"Creating sync directory {sync_path}")
            await client.create_directory(sync_path)
            return True

        sync_path = self._config.sync_path if self._config else None
        return await self._run("ensure_sync_directory", sync_path, op, cancel_token)

    async def sync_files(
        self,
        files: Union[Mapping[str, WritePayload], Sequence[Tuple[str, WritePayload]]],
        on_progress: Optional[ProgressCallback] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[int]:
        """Upload files below the sync directory, overwriting existing copies.

        Args:
            files: ``{name: payload}`` or ``[(name, payload), ...]``; names are
                relative to the sync directory
            on_progress: Called with the completed fraction after each file

        Returns:
            ``ok(count)`` when every file was written, otherwise a failure
            naming how many of the batch succeeded
        """
        items = list(files.items()) if isinstance(files, Mapping) else list(files)

        ensured = await self.ensure_sync_directory(cancel_token=cancel_token)
        if not ensured.success:
            return OperationResult.fail(
                ensured.error or "Could not prepare sync directory"
            )

        assert self._config is not None
        sync_path = self._normalize(self._config.sync_path).rstrip("/")
        failed: List[str] = []

        for index, (name, payload) in enumerate(items, start=1):
            result = await self.write(
                f"{sync_path}/{name.lstrip('/')}", payload, cancel_token=cancel_token
            )
            if not result.success:
                failed.append(name)
            if on_progress is not None:
                on_progress(index / len(items))

        synced = len(items) - len(failed)
        if failed:
            message = (
                f"Partially synced {synced}/{len(items)} files; failed: {', '.join(failed)}"
            )
            logger.warning(message)
            return OperationResult.fail(message)

        logger.info(f"Synced {synced} files to {sync_path or '/'}")
        return OperationResult.ok(synced)

    async def download_file(
        self,
        path: str,
        filename: Optional[str] = None,
        *,
        cancel_token: Optional[CancelToken] = None,
    ) -> OperationResult[DownloadedFile]:
        """Read a file as binary together with a filename and MIME type."""
        result = await self.read(path, format="binary", cancel_token=cancel_token)
        if not result.success:
            return OperationResult.fail(result.error or "Download failed")

        content = result.data
        assert isinstance(content, bytes)
        name = filename or basename(self._normalize(path)) or "download"
        return OperationResult.ok(
            DownloadedFile(
                filename=name,
                content=content,
                mime_type=mime_type_for(name),
                size=len(content),
            )
        )
