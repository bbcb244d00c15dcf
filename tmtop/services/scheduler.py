"""Periodic refresh of every category on its own interval."""

import asyncio
import logging
from collections.abc import Awaitable, Callable

from ..core.config import Settings, get_settings
from ..core.errors import ConsensusParseError, FetchError
from ..core.types import Category
from .aggregator import Aggregator
from .converter import build_consensus_update
from .state import StateStore

logger = logging.getLogger(__name__)

Refresh = Callable[[], Awaitable[None]]


class RefreshScheduler:
    """Drives one polling loop per category and publishes into the store.

    Loops tick immediately and then every interval. A tick spawns its refresh
    as a separate task and results land in completion order. A tick is dropped
    while the previous refresh of its category is still running, and while
    paused.
    """

    def __init__(
        self,
        store: StateStore,
        aggregator: Aggregator,
        settings: Settings | None = None,
    ):
        self.store = store
        self.aggregator = aggregator
        self.settings = settings or get_settings()

        self._paused = False
        self._loops: list[asyncio.Task] = []
        self._in_flight: set[asyncio.Task] = set()
        self._running: dict[Category, asyncio.Task] = {}
        self._stopped = asyncio.Event()

    @property
    def paused(self) -> bool:
        return self._paused

    def pause(self) -> None:
        if not self._paused:
            logger.info("Refresh paused")
        self._paused = True

    def resume(self) -> None:
        if self._paused:
            logger.info("Refresh resumed")
        self._paused = False

    def toggle_pause(self) -> bool:
        """Flip the pause flag and return the new value."""
        if self._paused:
            self.resume()
        else:
            self.pause()
        return self._paused

    def schedule(self) -> list[tuple[Category, float, Refresh]]:
        """Category, interval and refresh coroutine of every loop."""
        return [
            (Category.CONSENSUS, self.settings.refresh_rate, self.refresh_consensus),
            (
                Category.CHAIN_VALIDATORS,
                self.settings.validators_refresh_rate,
                self.refresh_chain_validators,
            ),
            (Category.STATUS, self.settings.chain_info_refresh_rate, self.refresh_status),
            (Category.UPGRADE, self.settings.upgrade_refresh_rate, self.refresh_upgrade),
            (
                Category.BLOCK_TIME,
                self.settings.block_time_refresh_rate,
                self.refresh_block_time,
            ),
        ]

    async def refresh_consensus(self) -> None:
        try:
            round_state, validators = await self.aggregator.fetch_consensus_and_votes()
        except FetchError as e:
            logger.error(f"Error refreshing {e.category.value}: {e}")
            self.store.set_error(e.category, e)
            return

        try:
            update = build_consensus_update(round_state, validators)
        except ConsensusParseError as e:
            logger.error(f"Error parsing consensus state: {e}")
            self.store.set_error(Category.CONSENSUS, e)
            return

        self.store.set_consensus(update)

    async def refresh_chain_validators(self) -> None:
        try:
            validators = await self.aggregator.fetch_chain_validators()
        except FetchError as e:
            logger.error(f"Error refreshing validators roster: {e}")
            self.store.set_error(e.category, e)
            return

        self.store.set_chain_validators(validators)

    async def refresh_status(self) -> None:
        try:
            status = await self.aggregator.fetch_status()
        except FetchError as e:
            logger.error(f"Error refreshing node status: {e}")
            self.store.set_error(e.category, e)
            return

        self.store.set_node_status(status)

    async def refresh_upgrade(self) -> None:
        try:
            upgrade = await self.aggregator.fetch_upgrade()
        except FetchError as e:
            logger.error(f"Error refreshing upgrade plan: {e}")
            self.store.set_error(e.category, e)
            return

        self.store.set_upgrade(upgrade)

    async def refresh_block_time(self) -> None:
        try:
            block_time = await self.aggregator.fetch_block_time()
        except FetchError as e:
            logger.error(f"Error refreshing block time: {e}")
            self.store.set_error(e.category, e)
            return

        self.store.set_block_time(block_time)

    async def _guarded(self, category: Category, refresh: Refresh) -> None:
        try:
            await refresh()
        except asyncio.CancelledError:
            raise
        except Exception as e:
            logger.exception(f"Unexpected error refreshing {category.value}")
            self.store.set_error(category, e)

    def tick(self, category: Category, refresh: Refresh) -> asyncio.Task | None:
        """Spawn one refresh unless paused or busy. Returns the spawned task."""
        if self._paused:
            logger.debug(f"Paused, skipping {category.value} refresh")
            return None

        running = self._running.get(category)
        if running is not None and not running.done():
            logger.debug(f"Previous {category.value} refresh still running, skipping tick")
            return None

        task = asyncio.create_task(self._guarded(category, refresh))
        self._running[category] = task
        self._in_flight.add(task)
        task.add_done_callback(self._in_flight.discard)
        return task

    async def _loop(self, category: Category, interval: float, refresh: Refresh) -> None:
        while True:
            self.tick(category, refresh)
            await asyncio.sleep(interval)

    async def refresh_all(self) -> None:
        """Refresh every category once, concurrently, ignoring the pause flag."""
        await asyncio.gather(
            *(self._guarded(category, refresh) for category, _, refresh in self.schedule())
        )

    async def run(self) -> None:
        """Run every loop until stop() is called."""
        self._stopped.clear()
        self._loops = [
            asyncio.create_task(self._loop(category, interval, refresh))
            for category, interval, refresh in self.schedule()
        ]
        logger.info(f"Started {len(self._loops)} refresh loops")

        try:
            await self._stopped.wait()
        finally:
            await self._cancel_all()

    def stop(self) -> None:
        self._stopped.set()

    async def _cancel_all(self) -> None:
        tasks = [*self._loops, *self._in_flight]
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._loops = []
        self._in_flight.clear()
        self._running.clear()
