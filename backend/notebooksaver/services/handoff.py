"""
NotebookSaver Backend — Drafts Hand-off Queue
===============================================

What:  Delivers extracted text to the Drafts app through its URL scheme
       (drafts://create?text=…&tag=…), queueing it durably when the host is
       not in the foreground.
Why:   Drafts can only be opened while the host is foregrounded, but a
       capture may finish after the user has switched away. Text produced
       then must survive until the next foreground transition, including a
       process restart in between.
How:   The queue is one JSON list in the KeyValueStore under `pendingDrafts`.
       Every mutation rewrites the whole list (the key is removed when the
       list empties), under an asyncio.Lock so concurrent submits keep their
       call order.

States:
    Idle ──drain_on_foreground()──▶ Draining ──(done)──▶ Idle

    A drain runs only while the host is active; otherwise it returns
    DrainResult.INACTIVE and the next foreground transition picks the queue
    up. Only one drain runs at a time; a drain requested while one is
    running returns DrainResult.BUSY without touching anything. Each drain hands off
    the head entry only and removes it only after Drafts accepted it, so a
    failed hand-off can never lose text.
"""

import asyncio
import logging
import re
import shutil
import uuid
from abc import ABC, abstractmethod
from typing import List, Optional
from urllib.parse import quote, urlencode

from pydantic import TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from notebooksaver.exceptions import (
    HandoffError,
    HandoffFailedError,
    InvalidURLError,
    NotInstalledError,
)
from notebooksaver.schemas.handoff import DrainResult, HandoffOutcome, PendingHandoffEntry
from notebooksaver.services.host import HostLifecycle
from notebooksaver.services.notifier import HandoffNotifier
from notebooksaver.services.store import KeyValueStore
from notebooksaver.services.telemetry import TelemetryService

logger = logging.getLogger(__name__)

QUEUE_KEY = "pendingDrafts"
CORRUPT_QUEUE_KEY = "pendingDrafts.corrupt"

_SCHEME_PATTERN = re.compile(r"^[A-Za-z][A-Za-z0-9+.\-]*$")
_entries_adapter = TypeAdapter(List[PendingHandoffEntry])


# ══════════════════════════════════════════════════════════════════════════
# URL opening
# ══════════════════════════════════════════════════════════════════════════

class UrlOpener(ABC):
    """Asks the operating system to open URLs."""

    @abstractmethod
    async def can_open(self, url: str) -> bool:
        """Whether some application is registered to handle `url`."""

    @abstractmethod
    async def open(self, url: str) -> bool:
        """Open `url`; True when the handler accepted it."""


class SystemUrlOpener(UrlOpener):
    """
    Desktop Linux opener built on xdg-utils.

    can_open asks `xdg-mime` for the default handler of the URL's scheme;
    open runs `xdg-open`. Missing tools count as "cannot open".
    """

    def __init__(self, timeout: float = 10.0):
        self.timeout = timeout

    async def _run(self, *argv: str) -> Optional[str]:
        if shutil.which(argv[0]) is None:
            logger.warning("%s is not available on this system", argv[0])
            return None
        process = await asyncio.create_subprocess_exec(
            *argv,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.PIPE,
        )
        try:
            stdout, stderr = await asyncio.wait_for(process.communicate(), self.timeout)
        except asyncio.TimeoutError:
            process.kill()
            await process.wait()
            logger.warning("%s timed out after %.0fs", argv[0], self.timeout)
            return None
        if process.returncode != 0:
            logger.warning(
                "%s exited with %d: %s",
                argv[0],
                process.returncode,
                stderr.decode(errors="replace").strip(),
            )
            return None
        return stdout.decode(errors="replace").strip()

    async def can_open(self, url: str) -> bool:
        scheme = url.split(":", 1)[0].lower()
        handler = await self._run("xdg-mime", "query", "default", f"x-scheme-handler/{scheme}")
        return bool(handler)

    async def open(self, url: str) -> bool:
        return await self._run("xdg-open", url) is not None


# ══════════════════════════════════════════════════════════════════════════
# Hand-off target
# ══════════════════════════════════════════════════════════════════════════

class HandoffTarget:
    """
    The Drafts app as seen through its URL scheme.

    URL format:  {scheme}://{action}?text=<pct-encoded>[&tag=<pct-encoded>]
    Install probe: {scheme}://
    """

    def __init__(self, opener: UrlOpener, scheme: str = "drafts", action: str = "create"):
        self.opener = opener
        self.scheme = scheme
        self.action = action

    @property
    def probe_url(self) -> str:
        return f"{self.scheme}://"

    def build_url(self, text: str, tag: Optional[str] = None) -> str:
        """
        Raises:
            InvalidURLError: bad scheme/action, non-string text, or text that
                cannot be UTF-8 encoded
        """
        if not _SCHEME_PATTERN.match(self.scheme or "") or not self.action:
            raise InvalidURLError(context={"scheme": self.scheme, "action": self.action})
        if not isinstance(text, str):
            raise InvalidURLError("Draft text must be a string")
        params = [("text", text)]
        if tag:
            params.append(("tag", tag))
        try:
            query = urlencode(params, quote_via=quote, safe="")
        except UnicodeEncodeError as e:
            raise InvalidURLError(
                "Draft text contains characters that cannot be URL-encoded",
                context={"error": str(e)},
            ) from e
        return f"{self.scheme}://{self.action}?{query}"

    async def is_installed(self) -> bool:
        return await self.opener.can_open(self.probe_url)

    async def deliver(self, text: str, tag: Optional[str] = None) -> bool:
        """Open the create-draft URL; True when Drafts accepted it."""
        url = self.build_url(text, tag)
        opened = await self.opener.open(url)
        logger.info("Drafts hand-off of %d chars %s", len(text), "accepted" if opened else "rejected")
        return opened


# ══════════════════════════════════════════════════════════════════════════
# Queue
# ══════════════════════════════════════════════════════════════════════════

class DraftHandoffQueue:
    """Durable FIFO of text waiting for Drafts."""

    def __init__(
        self,
        store: KeyValueStore,
        target: HandoffTarget,
        host: HostLifecycle,
        telemetry: TelemetryService,
        notifier: Optional[HandoffNotifier] = None,
    ):
        self.store = store
        self.target = target
        self.host = host
        self.telemetry = telemetry
        self.notifier = notifier
        self._lock = asyncio.Lock()
        self._draining = False

    @property
    def is_draining(self) -> bool:
        return self._draining

    async def submit(self, text: str, tag: Optional[str] = None) -> HandoffOutcome:
        """
        Hand `text` to Drafts now, or queue it for the next foreground.

        While the host is active the hand-off is attempted immediately and
        the queue is not consulted. While inactive the entry is appended to
        the tail and no hand-off is attempted.

        Raises:
            NotInstalledError: host active and no handler for the scheme
            InvalidURLError: host active and the URL could not be built
            HandoffFailedError: host active and the opener reported failure
        """
        if self.host.is_active:
            if not await self.target.is_installed():
                raise NotInstalledError(self.target.scheme)
            if not await self.target.deliver(text, tag):
                raise HandoffFailedError()
            return HandoffOutcome.DELIVERED

        entry = PendingHandoffEntry(text=text, tag=tag or None)
        async with self._lock:
            entries = await self._load()
            entries.append(entry)
            await self._save(entries)
            depth = len(entries)
        logger.info("Host inactive; queued draft (%d pending)", depth)
        await self._announce(text)
        return HandoffOutcome.QUEUED

    async def drain_on_foreground(self) -> DrainResult:
        """
        Try to hand off the oldest queued entry.

        The check-and-set of the drain flag has no await between them, so
        two drains can never both proceed. No telemetry session is opened
        for an empty queue or a missing target. The hand-off itself runs
        outside the queue lock so submits are not held up by a slow opener.
        """
        if not self.host.is_active:
            logger.debug("Host inactive; drain deferred to the next foreground")
            return DrainResult.INACTIVE
        if self._draining:
            logger.debug("Drain already in progress")
            return DrainResult.BUSY
        self._draining = True
        try:
            async with self._lock:
                entries = await self._load()
            if not entries:
                return DrainResult.EMPTY
            if not await self.target.is_installed():
                logger.info(
                    "Drafts is not installed; keeping %d queued draft(s)", len(entries)
                )
                return DrainResult.NOT_INSTALLED
            return await self._hand_off_head(entries[0])
        finally:
            self._draining = False

    async def _hand_off_head(self, head: PendingHandoffEntry) -> DrainResult:
        with self.telemetry.session() as scope:
            token = self.telemetry.start_timing("Create Pending Draft", scope.id)
            try:
                delivered = await self.target.deliver(head.text, head.tag)
            except HandoffError as e:
                self.telemetry.end_timing(token, error=e)
                scope.fail()
                logger.warning("Queued draft hand-off failed: %s", e.message)
                return DrainResult.FAILED
            if not delivered:
                self.telemetry.end_timing(token, success=False)
                scope.fail()
                return DrainResult.FAILED

            async with self._lock:
                entries = await self._load()
                if entries and entries[0] == head:
                    entries.pop(0)
                    await self._save(entries)
                remaining = len(entries)
            self.telemetry.end_timing(token)
        logger.info("Delivered queued draft (%d still pending)", remaining)
        return DrainResult.DELIVERED

    async def handle_notification(self, correlation_id: str) -> DrainResult:
        """
        Subscriber for HandoffNotifier: a tapped notification triggers a drain.

        A tap while the host is inactive drains nothing; the foreground
        transition that follows it does.
        """
        return await self.drain_on_foreground()

    async def pending_entries(self) -> List[PendingHandoffEntry]:
        async with self._lock:
            return await self._load()

    async def pending_count(self) -> int:
        return len(await self.pending_entries())

    # ── Persistence ───────────────────────────────────────────────────────

    async def _load(self) -> List[PendingHandoffEntry]:
        """Read the queue. Caller holds the lock."""
        raw = await self.store.get(QUEUE_KEY)
        if raw is None:
            return []
        try:
            return _entries_adapter.validate_json(raw)
        except PydanticValidationError as e:
            logger.error(
                "Queued drafts could not be decoded (%d errors); moved to '%s'",
                e.error_count(),
                CORRUPT_QUEUE_KEY,
            )
            await self.store.set(CORRUPT_QUEUE_KEY, raw)
            await self.store.remove(QUEUE_KEY)
            return []

    async def _save(self, entries: List[PendingHandoffEntry]) -> None:
        """Write the whole queue, or remove the key when empty. Caller holds the lock."""
        if not entries:
            await self.store.remove(QUEUE_KEY)
            return
        payload = _entries_adapter.dump_json(entries, by_alias=True).decode("utf-8")
        await self.store.set(QUEUE_KEY, payload)

    async def _announce(self, text: str) -> None:
        if self.notifier is None:
            return
        correlation_id = str(uuid.uuid4())
        try:
            await self.notifier.result_ready(correlation_id, preview=text)
        except Exception as e:
            # The entry is already persisted; a lost notification only delays it
            logger.warning("Could not present the page-ready notification: %s", e)
