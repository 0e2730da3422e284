"""Generic WebDAV protocol client."""

import logging
import mimetypes
import xml.etree.ElementTree as ET
from datetime import datetime
from email.utils import parsedate_to_datetime
from typing import List, Optional, Union

from httpx import HTTPStatusError

from webdav_bridge.errors import MalformedUpstreamResponseError
from webdav_bridge.models import FileEntry, FileKind, RawBytes
from webdav_bridge.paths import basename, encode_path, href_to_path, normalize_path

from .base import BaseWebDAVClient

logger = logging.getLogger(__name__)

PROPFIND_BODY = """<?xml version="1.0" encoding="utf-8"?>
<d:propfind xmlns:d="DAV:">
    <d:prop>
        <d:displayname/>
        <d:getcontentlength/>
        <d:getcontenttype/>
        <d:getlastmodified/>
        <d:getetag/>
        <d:resourcetype/>
    </d:prop>
</d:propfind>"""


def _parse_http_date(value: Optional[str]) -> Optional[datetime]:
    """Parse an RFC 1123 ``getlastmodified`` value (ISO 8601 is tolerated)."""
    if not value:
        return None
    try:
        return parsedate_to_datetime(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        logger.debug(f"Unparseable getlastmodified value: {value!r}")
        return None


class WebDAVClient(BaseWebDAVClient):
    """Client for PROPFIND/GET/PUT/MKCOL/DELETE against one WebDAV base URL.

    Paths passed in are WebDAV-relative (``/notes/a.md``). Listing filenames
    are the decoded hrefs the server returned, with this client's own root
    path removed when they start with it; hrefs from another path space (as
    seen when talking through a proxy) are returned as-is.
    """

    def _url(self, path: str, collection: bool = False) -> str:
        url = encode_path(normalize_path(path))
        if collection and not url.endswith("/"):
            url += "/"
        return url

    def _filename_for(self, href: str) -> str:
        path = href_to_path(href)
        root = self.root_path
        if root and (path == root or path.startswith(root + "/")):
            path = path[len(root):]
        if len(path) > 1:
            path = path.rstrip("/")
        return path or "/"

    def _parse_multistatus(self, content: bytes) -> List[FileEntry]:
        root = ET.fromstring(content)
        if root.tag != "{DAV:}multistatus":
            raise MalformedUpstreamResponseError(
                f"Expected a DAV multistatus document, got <{root.tag}>"
            )

        entries = []
        for response_elem in root.findall("{DAV:}response"):
            href = response_elem.find("{DAV:}href")
            if href is None or not href.text:
                continue

            # Merge the successful propstat blocks; 404 blocks list absent props
            props: dict[str, ET.Element] = {}
            for propstat in response_elem.findall("{DAV:}propstat"):
                status = propstat.findtext("{DAV:}status") or ""
                if status and " 200 " not in f"{status} ":
                    continue
                prop = propstat.find("{DAV:}prop")
                if prop is None:
                    continue
                for child in prop:
                    props[child.tag] = child

            resourcetype = props.get("{DAV:}resourcetype")
            is_directory = (
                resourcetype is not None
                and resourcetype.find("{DAV:}collection") is not None
            )

            def text(tag: str) -> Optional[str]:
                elem = props.get(tag)
                return elem.text.strip() if elem is not None and elem.text else None

            size_text = text("{DAV:}getcontentlength")
            content_type = text("{DAV:}getcontenttype")
            etag = text("{DAV:}getetag")
            filename = self._filename_for(href.text)

            entries.append(
                FileEntry(
                    filename=filename,
                    basename=basename(filename),
                    last_modified=_parse_http_date(text("{DAV:}getlastmodified")),
                    size=int(size_text) if size_text and size_text.isdigit() else 0,
                    kind=FileKind.DIRECTORY if is_directory else FileKind.FILE,
                    etag=etag.replace('"', "") if etag else None,
                    mime=content_type.split(";")[0].strip() if content_type else None,
                )
            )

        return entries

    def _is_self(self, entry: FileEntry, target: str) -> bool:
        extra = [self.root_path] if self.root_path else []
        return normalize_path(entry.filename, extra).rstrip("/") == target.rstrip("/")

    async def get_directory_contents(
        self, path: str = "/", deep: bool = False
    ) -> List[FileEntry]:
        """List a collection via PROPFIND.

        Args:
            path: Collection path
            deep: ``Depth: infinity`` instead of ``Depth: 1``

        Returns:
            Entries below ``path``; the collection itself is excluded
        """
        target = normalize_path(path)
        headers = {
            "Depth": "infinity" if deep else "1",
            "Content-Type": "application/xml; charset=utf-8",
        }

        logger.debug(f"Listing directory: {target} (deep={deep})")
        response = await self._make_request(
            "PROPFIND",
            self._url(target, collection=True),
            content=PROPFIND_BODY,
            headers=headers,
        )

        entries = [
            entry
            for entry in self._parse_multistatus(response.content)
            if not self._is_self(entry, target)
        ]
        logger.debug(f"Found {len(entries)} items in directory: {target}")
        return entries

    async def stat(self, path: str) -> FileEntry:
        """Return the properties of a single resource (``Depth: 0``)."""
        response = await self._make_request(
            "PROPFIND",
            self._url(path),
            content=PROPFIND_BODY,
            headers={"Depth": "0", "Content-Type": "application/xml; charset=utf-8"},
        )
        entries = self._parse_multistatus(response.content)
        if not entries:
            raise MalformedUpstreamResponseError(
                f"PROPFIND for '{path}' returned no entries"
            )
        return entries[0]

    async def exists(self, path: str) -> bool:
        try:
            await self.stat(path)
        except HTTPStatusError as e:
            if e.response.status_code == 404:
                return False
            raise
        return True

    async def get_file_contents(
        self, path: str, format: str = "binary"
    ) -> Union[str, RawBytes]:
        """Fetch a file via GET.

        Returns:
            Decoded text for ``format="text"``, otherwise ``RawBytes``
        """
        response = await self._make_request("GET", self._url(path))
        logger.debug(f"Read file '{path}' ({len(response.content)} bytes)")
        if format == "text":
            return response.text
        return RawBytes(response.content)

    async def put_file_contents(
        self,
        path: str,
        content: bytes,
        overwrite: bool = True,
        content_type: Optional[str] = None,
    ) -> bool:
        """Upload a file via PUT.

        With ``overwrite=False`` the request carries ``If-None-Match: *`` so
        the server answers 412 instead of replacing an existing file.
        """
        if not content_type:
            content_type, _ = mimetypes.guess_type(path)
            if not content_type:
                content_type = "application/octet-stream"

        headers = {"Content-Type": content_type}
        if not overwrite:
            headers["If-None-Match"] = "*"

        await self._make_request(
            "PUT", self._url(path), content=content, headers=headers
        )
        logger.debug(f"Wrote file '{path}' ({len(content)} bytes)")
        return True

    async def create_directory(self, path: str) -> bool:
        """Create a collection via MKCOL.

        Returns:
            True if created, False if it already existed (405)
        """
        try:
            await self._make_request("MKCOL", self._url(path, collection=True))
        except HTTPStatusError as e:
            # Method Not Allowed - directory already exists
            if e.response.status_code == 405:
                logger.debug(f"Directory '{path}' already exists")
                return False
            raise
        logger.debug(f"Created directory '{path}'")
        return True

    async def delete(self, path: str) -> bool:
        await self._make_request("DELETE", self._url(path))
        logger.debug(f"Deleted '{path}'")
        return True
