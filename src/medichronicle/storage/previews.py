"""
Display handles for stored payloads.

A handle is an opaque `preview://` token that resolves to a document's
bytes for the lifetime of one registry. Handles are never persisted: every
repository load issues new ones, and a registry created in a later process
does not know the old tokens.

Handles that are superseded (reload, removal, reset) must be revoked, or
the registry keeps the payload bytes alive indefinitely.
"""

from __future__ import annotations

import logging
import uuid

logger = logging.getLogger(__name__)

HANDLE_SCHEME = "preview://"


class PreviewRegistry:
    """Process-scoped map from display handle to payload bytes."""

    def __init__(self):
        self._payloads: dict[str, bytes] = {}

    def create(self, content: bytes) -> str:
        handle = f"{HANDLE_SCHEME}{uuid.uuid4().hex}"
        self._payloads[handle] = content
        return handle

    def resolve(self, handle: str) -> bytes | None:
        """Bytes behind a live handle, or None once it has been revoked."""
        return self._payloads.get(handle)

    def revoke(self, handle: str | None) -> None:
        if handle is not None:
            self._payloads.pop(handle, None)

    def revoke_all(self) -> None:
        if self._payloads:
            logger.debug(f"Revoking {len(self._payloads)} display handle(s)")
        self._payloads.clear()

    def __contains__(self, handle: object) -> bool:
        return handle in self._payloads

    def __len__(self) -> int:
        return len(self._payloads)
