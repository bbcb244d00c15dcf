"""Orchestrates the fetches feeding each refresh category."""

import asyncio
import logging
from datetime import timedelta

from ..core.config import Settings, get_settings
from ..core.errors import FetchError
from ..core.rpc_types import ConsensusRoundState, TendermintValidator
from ..core.types import Category, ChainValidator, NodeStatus, Upgrade
from ..data.fetchers import DataFetcher, get_data_fetcher
from ..data.tendermint import TendermintRPC

logger = logging.getLogger(__name__)

HALT_HEIGHT_UPGRADE_NAME = "halt-height upgrade"


class Aggregator:
    """Fans out to the node RPC and the roster source, one group per category.

    Groups are independent of each other and have no side effects: every call
    returns fresh data or raises a FetchError naming the failed category.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        tendermint: TendermintRPC | None = None,
        data_fetcher: DataFetcher | None = None,
    ):
        self.settings = settings or get_settings()
        self.tendermint = tendermint or TendermintRPC(
            self.settings.rpc_host, timeout=self.settings.request_timeout
        )
        self.data_fetcher = data_fetcher or get_data_fetcher(self.settings)

    async def fetch_consensus_and_votes(
        self,
    ) -> tuple[ConsensusRoundState, list[TendermintValidator]]:
        """Consensus state and the node's validator list, fetched together.

        Both requests always run to completion. If both fail, only the
        consensus error is raised since it is the more telling one.
        """
        consensus, validators = await asyncio.gather(
            self.tendermint.get_consensus_state(),
            self.tendermint.get_validators(),
            return_exceptions=True,
        )

        if isinstance(consensus, BaseException):
            if isinstance(validators, BaseException):
                logger.debug(f"Validators fetch also failed: {validators}")
            raise FetchError(Category.CONSENSUS, consensus) from consensus

        if isinstance(validators, BaseException):
            raise FetchError(Category.VALIDATORS, validators) from validators

        return consensus, validators

    async def fetch_chain_validators(self) -> list[ChainValidator]:
        try:
            return await self.data_fetcher.get_validators()
        except Exception as e:
            raise FetchError(Category.CHAIN_VALIDATORS, e) from e

    async def fetch_upgrade(self) -> Upgrade | None:
        """Scheduled upgrade. A configured halt height always wins."""
        if self.settings.halt_height > 0:
            return Upgrade(
                name=HALT_HEIGHT_UPGRADE_NAME,
                height=self.settings.halt_height,
                source="halt-height",
            )

        try:
            return await self.data_fetcher.get_upgrade_plan()
        except Exception as e:
            raise FetchError(Category.UPGRADE, e) from e

    async def fetch_status(self) -> NodeStatus:
        try:
            return await self.tendermint.get_status()
        except Exception as e:
            raise FetchError(Category.STATUS, e) from e

    async def fetch_block_time(self) -> timedelta:
        try:
            return await self.tendermint.get_block_time(self.settings.blocks_behind)
        except Exception as e:
            raise FetchError(Category.BLOCK_TIME, e) from e
