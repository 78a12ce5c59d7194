"""Recurring sweep that restarts activation for users whose token lapsed."""

import asyncio
from datetime import datetime, timedelta, timezone
from typing import Callable, Optional

import structlog

from modulehub.config import get_settings
from modulehub.models.token import TokenScope
from modulehub.services.email_service import EmailService
from modulehub.services.token_service import TokenService
from modulehub.services.user_service import UserService

logger = structlog.get_logger(__name__)


def _utc_now() -> datetime:
    return datetime.now(timezone.utc)


class ActivationSweeper:
    """Periodically reissues activation tokens for unactivated, expired users.

    Only users whose newest activation token expired more than the grace
    window ago are touched. A failure for one user is logged and the sweep
    moves on; a failure to load the candidates stops the sweeper for good.
    """

    def __init__(
        self,
        user_service: Optional[UserService] = None,
        token_service: Optional[TokenService] = None,
        email_service: Optional[EmailService] = None,
        clock: Optional[Callable[[], datetime]] = None,
    ):
        self.settings = get_settings()
        self._clock = clock or _utc_now
        self.user_service = user_service or UserService()
        self.token_service = token_service or TokenService(clock=self._clock)
        self.email_service = email_service or EmailService()
        self._task: Optional[asyncio.Task] = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    def start(self):
        """Start the sweep loop as an asyncio background task."""
        self._running = True
        self._task = asyncio.create_task(self._sweep_loop())
        logger.info(
            "activation_sweeper_started",
            interval_seconds=self.settings.sweeper_interval_seconds,
            grace_seconds=self.settings.sweeper_grace_seconds,
        )

    async def stop(self):
        """Stop the sweep loop."""
        self._running = False
        if self._task:
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass
        logger.info("activation_sweeper_stopped")

    async def _sweep_loop(self):
        """Sleep one interval, sweep, repeat until stopped or a fatal error."""
        interval = self.settings.sweeper_interval_seconds

        while self._running:
            try:
                await asyncio.sleep(interval)
                await self.sweep_once()
            except asyncio.CancelledError:
                break
            except Exception as e:
                logger.critical("activation_sweep_fatal", error=str(e))
                self._running = False
                break

    async def sweep_once(self) -> int:
        """Run a single sweep.

        Returns:
            Number of users whose activation token was reissued

        Raises:
            Exception: Whatever the candidate query raised; per-user failures
                are logged and skipped instead
        """
        cutoff = self._clock() - timedelta(seconds=self.settings.sweeper_grace_seconds)
        users = await self.user_service.find_unactivated_expired(cutoff)

        if not users:
            return 0

        logger.info("activation_sweep_candidates", count=len(users))

        ttl = timedelta(seconds=self.settings.activation_token_ttl_seconds)
        reissued = 0

        for user in users:
            try:
                issued = await self.token_service.reissue(user.id, ttl, TokenScope.ACTIVATION)
            except Exception as e:
                logger.error("activation_reissue_failed", user_id=user.id, error=str(e))
                continue

            self.email_service.dispatch_welcome(user.id, user.email, issued.plaintext)
            reissued += 1

        logger.info(
            "activation_sweep_completed",
            candidates=len(users),
            reissued=reissued,
        )
        return reissued
