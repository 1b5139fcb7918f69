"""
Wave scheduler — breadth-first crawl of a tenant's membership graph.

Starting from seed users, each wave expands every queued user (memberOf)
and then every queued group (members). Users found in groups feed the
next wave. The crawl ends when a wave leaves both frontiers empty.
"""

from __future__ import annotations

import asyncio
import logging
from typing import TYPE_CHECKING, Awaitable, Callable, Iterable, Optional

from ..config import CrawlConfig
from .classifier import MembershipClassifier
from .directory import DirectoryClient
from .models import CrawlStats, ErrorRecord, MemberRecord
from .registry import Frontier, VisitedRegistry

if TYPE_CHECKING:
    from ..reporting.base import RecordSink

logger = logging.getLogger("membership_crawler.crawler")


def parse_seeds(text: str) -> list[str]:
    """Split a comma or newline separated list of user ids / UPNs."""
    return [s.strip() for s in text.replace("\n", ",").split(",") if s.strip()]


class MembershipCrawler:
    """
    Crawls one tenant for one set of seeds. Not reusable across runs.

    State shared by the workers of a phase:
      discovered   ids already written to the sink (users, groups, roles, units)
      expanded     ids whose membership query has been issued, at most once each
      frontiers    users and groups waiting for the next phase
    """

    def __init__(
        self,
        directory: DirectoryClient,
        sink: "RecordSink",
        config: Optional[CrawlConfig] = None,
    ):
        self.directory = directory
        self.sink = sink
        self.config = config or CrawlConfig()
        self.stats = CrawlStats()

        self.discovered = VisitedRegistry()
        self.expanded = VisitedRegistry()
        self.user_frontier = Frontier("users")
        self.group_frontier = Frontier("groups")
        self.classifier = MembershipClassifier(
            self.discovered, self.group_frontier, sink, self.stats
        )

        self._stop_requested = False
        self._processed = 0
        self._phase_size = 0

    def stop(self):
        """Stop launching new expansions. In-flight ones finish normally."""
        self._stop_requested = True

    async def run(self, seeds: Iterable[str]) -> CrawlStats:
        await self.resolve_seeds(seeds)
        if not self.user_frontier and not self._stop_requested:
            self.stats.no_input = True
            logger.warning("No user found to start the analysis")
            return self.stats

        while (self.user_frontier or self.group_frontier) and not self._stop_requested:
            self.stats.waves += 1
            wave = self.stats.waves
            await self._expand_frontier(wave, self.user_frontier, self._expand_user)
            if self._stop_requested:
                break
            await self._expand_frontier(wave, self.group_frontier, self._expand_group)

        if self._stop_requested:
            self.stats.users_pending = len(self.user_frontier)
            self.stats.groups_pending = len(self.group_frontier)
            logger.warning(
                f"Crawl stopped after {self.stats.waves} wave(s); "
                f"{self.stats.users_pending} user(s) and {self.stats.groups_pending} "
                f"group(s) left unexpanded"
            )
        else:
            logger.info(f"Crawl complete after {self.stats.waves} wave(s)")
        return self.stats

    async def _expand_frontier(
        self,
        wave: int,
        frontier: Frontier,
        handler: Callable[[str], Awaitable[None]],
    ):
        """Drain one frontier through handler. Ids not started before a stop go back."""
        object_ids = frontier.drain()
        logger.info(f"Iteration {wave}: {len(object_ids)} {frontier.name} to analyze")
        for object_id in await self._run_phase(object_ids, handler, frontier.name):
            if object_id not in self.expanded:
                frontier.add(object_id)

    # ── Seeds ───────────────────────────────────────────────────────────────

    async def resolve_seeds(self, seeds: Iterable[str]) -> list[str]:
        """Resolve seeds to users, record them and queue them for wave 1."""
        seeds = [s.strip() for s in seeds if s and s.strip()]
        self.stats.seeds_requested = len(seeds)
        logger.info(f"{len(seeds)} user(s) to proceed")
        resolved: list[str] = []

        async def resolve(seed: str):
            try:
                user = await self.directory.get_direct_object(seed)
            except Exception as e:
                self.stats.unresolved_seeds.append(seed)
                logger.warning(f"Unable to locate {seed} ({_message(e)})")
                return
            resolved.append(user.id)
            if self.discovered.try_claim(user.id):
                self.sink.write_user(user)
                self.stats.users_recorded += 1
                self.user_frontier.add(user.id)

        skipped = await self._run_phase(seeds, resolve, "seeds")
        if skipped:
            logger.warning(f"Stopped before resolving {len(skipped)} seed(s)")
        self.stats.seeds_resolved = len(resolved)
        return resolved

    # ── Phases ──────────────────────────────────────────────────────────────

    async def _run_phase(
        self,
        object_ids: list[str],
        handler: Callable[[str], Awaitable[None]],
        label: str,
    ) -> list[str]:
        """
        Run handler over object_ids with at most max_parallel in flight.

        Returns the ids never started because stop() was called. If a handler
        raises, the other workers are cancelled before the error propagates.
        """
        if not object_ids:
            return []
        queue: asyncio.Queue[str] = asyncio.Queue()
        for object_id in object_ids:
            queue.put_nowait(object_id)

        self._processed = 0
        self._phase_size = len(object_ids)
        width = max(1, min(self.config.max_parallel, len(object_ids)))

        async def worker():
            while not self._stop_requested:
                try:
                    object_id = queue.get_nowait()
                except asyncio.QueueEmpty:
                    return
                await handler(object_id)
                self._tick(label)

        workers = [asyncio.create_task(worker()) for _ in range(width)]
        try:
            await asyncio.gather(*workers)
        except BaseException:
            for task in workers:
                task.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            raise

        unstarted: list[str] = []
        while not queue.empty():
            unstarted.append(queue.get_nowait())
        return unstarted

    def _tick(self, label: str):
        self._processed += 1
        interval = self.config.progress_interval
        if interval and self._processed % interval == 0:
            logger.info(
                f"Analyzed {self._processed} {label}. "
                f"{self._phase_size - self._processed} to go."
            )

    # ── Expansion ───────────────────────────────────────────────────────────

    async def _expand_user(self, user_id: str):
        if not self.expanded.try_claim(user_id):
            return
        try:
            memberships = await self.directory.get_memberships(user_id)
        except Exception as e:
            self._record_error(user_id, e)
            return
        self.stats.users_expanded += 1
        for membership in memberships:
            self.classifier.handle(user_id, membership)

    async def _expand_group(self, group_id: str):
        if not self.expanded.try_claim(group_id):
            return
        name = self.classifier.group_names.get(group_id, group_id)
        seen = 0
        new_users = 0
        try:
            async for member in self.directory.stream_group_members(group_id):
                seen += 1
                if self._record_member(group_id, member):
                    new_users += 1
                interval = self.config.progress_interval
                if interval and seen % interval == 0:
                    logger.info(f"Busy enumerating group {name} (currently {seen} members)")
        except Exception as e:
            self._record_error(group_id, e)
            return
        self.stats.groups_expanded += 1
        if new_users:
            logger.info(f"Found {new_users} user(s) in {name}")

    def _record_member(self, group_id: str, member: MemberRecord) -> bool:
        """Record the membership edge, and the member itself if it is a new user."""
        self.sink.write_group_membership(group_id, member.id)
        self.stats.group_edges += 1

        # Members without a userType are devices, service principals or
        # nested groups; they are never expanded as users.
        if not member.user_type:
            return False
        if not self.discovered.try_claim(member.id):
            return False
        self.sink.write_user(member)
        self.stats.users_recorded += 1
        self.user_frontier.add(member.id)
        return True

    def _record_error(self, object_id: str, error: Exception):
        message = _message(error)
        self.sink.write_error(ErrorRecord(object_id, message))
        self.stats.errors += 1
        logger.warning(f"Expansion of {object_id} failed: {message}")


def _message(error: Exception) -> str:
    return getattr(error, "message", None) or str(error) or type(error).__name__
