"""Client-side countdown and resync controller.

The controller never decides claimability on its own. ``tick`` only moves a
cosmetic countdown derived from the last server snapshot and a monotonic
clock; the transition to READY always comes from a ``resync``.
"""

from __future__ import annotations

import asyncio
import enum
import logging
import time
from collections.abc import Callable

import httpx
from pydantic import ValidationError

from uticoins.client.ledger_client import LedgerClient
from uticoins.config import get_settings
from uticoins.rewards.errors import ClaimError, ClaimErrorKind
from uticoins.rewards.schemas import ClaimResponse, CodeStateResponse

logger = logging.getLogger(__name__)


class ControllerState(str, enum.Enum):
    WAITING = "waiting"
    READY = "ready"


class ClaimInFlightError(RuntimeError):
    """A second claim was attempted while the first had no outcome yet."""


class ResyncController:
    def __init__(
        self,
        client: LedgerClient,
        *,
        tick_interval: float | None = None,
        resync_interval: float | None = None,
        monotonic: Callable[[], float] = time.monotonic,
    ) -> None:
        settings = get_settings()
        self._client = client
        self.tick_interval = tick_interval if tick_interval is not None else settings.client_tick_interval_seconds
        self.resync_interval = (
            resync_interval if resync_interval is not None else settings.client_resync_interval_seconds
        )
        self._monotonic = monotonic

        self.state = ControllerState.WAITING
        self.snapshot: CodeStateResponse | None = None
        self.countdown_seconds = 0.0
        self.last_error: ClaimError | None = None
        self.last_claim: ClaimResponse | None = None

        self._synced_at = 0.0
        self._claim_in_flight = False
        self._resync_task: asyncio.Task[None] | None = None
        self._loops: list[asyncio.Task[None]] = []
        self._closed = False

    @property
    def claim_in_flight(self) -> bool:
        return self._claim_in_flight

    @property
    def closed(self) -> bool:
        return self._closed

    # ── Resync ──

    async def resync(self) -> CodeStateResponse | None:
        """Fetch the authoritative state and apply it. Returns None after teardown."""
        snapshot = await self._client.current_state()
        if self._closed:
            return None
        self._apply(snapshot)
        return snapshot

    def _apply(self, snapshot: CodeStateResponse) -> None:
        self.snapshot = snapshot
        self._synced_at = self._monotonic()
        self.last_error = None
        previous = self.state
        self.state = ControllerState.READY if snapshot.can_claim else ControllerState.WAITING
        self.countdown_seconds = float(self._target_seconds(snapshot))
        if previous is not self.state:
            logger.info("Daily code state %s -> %s", previous.value, self.state.value)

    def _target_seconds(self, snapshot: CodeStateResponse) -> int:
        if self.state is ControllerState.READY:
            return snapshot.seconds_until_claim_deadline
        return snapshot.seconds_until_next_code

    # ── Countdown ──

    def tick(self) -> float:
        """Recompute the countdown; schedule a resync when it reaches zero."""
        if self._closed or self.snapshot is None:
            return self.countdown_seconds
        elapsed = self._monotonic() - self._synced_at
        self.countdown_seconds = max(0.0, self._target_seconds(self.snapshot) - elapsed)
        if self.countdown_seconds == 0.0:
            self._schedule_resync()
        return self.countdown_seconds

    def _schedule_resync(self) -> None:
        if self._resync_task is not None and not self._resync_task.done():
            return
        self._resync_task = asyncio.get_running_loop().create_task(self._safe_resync())

    async def _safe_resync(self) -> None:
        """Resync for background callers; a failure is logged and the next interval retries."""
        try:
            await self.resync()
        except ClaimError as exc:
            if not self._closed:
                self.last_error = exc
            logger.warning("Resync failed: %s", exc.kind.value)
        except (httpx.HTTPError, ValidationError):
            logger.warning("Resync failed", exc_info=True)

    # ── Claim ──

    async def claim(self, code: str | None = None) -> ClaimResponse:
        """Validate with a fresh resync, claim, then resync whatever the outcome."""
        if self._closed:
            raise RuntimeError("Controller is stopped")
        if self._claim_in_flight:
            raise ClaimInFlightError("A claim is already in flight")
        self._claim_in_flight = True
        try:
            snapshot = await self.resync()
            if snapshot is None:
                raise RuntimeError("Controller is stopped")
            if not snapshot.can_claim:
                raise ClaimError(ClaimErrorKind.NOT_CLAIMABLE, "No claimable code right now")
            try:
                result = await self._client.claim(code)
            except Exception as exc:
                if isinstance(exc, ClaimError) and not self._closed:
                    self.last_error = exc
                # Any failure may hide a landed claim; the resync below settles it.
                await self._safe_resync()
                raise
            if not self._closed:
                self.last_claim = result
            await self._safe_resync()
            return result
        finally:
            self._claim_in_flight = False

    # ── Lifecycle ──

    async def start(self) -> None:
        """Resync once, then run the tick and periodic resync loops."""
        self._closed = False
        await self._safe_resync()
        loop = asyncio.get_running_loop()
        self._loops = [
            loop.create_task(self._tick_loop()),
            loop.create_task(self._resync_loop()),
        ]

    async def stop(self) -> None:
        self._closed = True
        tasks = [*self._loops]
        if self._resync_task is not None:
            tasks.append(self._resync_task)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops = []
        self._resync_task = None

    async def _tick_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.tick_interval)
            self.tick()

    async def _resync_loop(self) -> None:
        while not self._closed:
            await asyncio.sleep(self.resync_interval)
            await self._safe_resync()
