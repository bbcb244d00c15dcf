"""In-memory stand-ins for the node RPC and roster sources."""

import asyncio
from datetime import timedelta

from tmtop.core.types import ChainValidator, NodeStatus, Upgrade


class FakeTendermint:
    """Returns canned values or raises canned errors, counting every call."""

    def __init__(
        self,
        round_state=None,
        validators=None,
        status=None,
        block_time=timedelta(seconds=6),
        errors=None,
    ):
        self.round_state = round_state
        self.validators = validators or []
        self.status = status or NodeStatus(network="test-1", version="0.38.12")
        self.block_time = block_time
        self.errors = errors or {}
        self.calls: list[str] = []

    async def _answer(self, name, value):
        self.calls.append(name)
        await asyncio.sleep(0)
        if name in self.errors:
            raise self.errors[name]
        return value

    async def get_consensus_state(self):
        return await self._answer("consensus", self.round_state)

    async def get_validators(self):
        return await self._answer("validators", self.validators)

    async def get_status(self):
        return await self._answer("status", self.status)

    async def get_block_time(self, blocks_behind=None):
        return await self._answer("block_time", self.block_time)


class FakeDataFetcher:
    def __init__(self, validators=None, upgrade=None, errors=None):
        self.validators = validators or [ChainValidator(moniker="alice", address="VAL0")]
        self.upgrade = upgrade
        self.errors = errors or {}
        self.calls: list[str] = []

    async def get_validators(self) -> list[ChainValidator]:
        self.calls.append("validators")
        if "validators" in self.errors:
            raise self.errors["validators"]
        return self.validators

    async def get_upgrade_plan(self) -> Upgrade | None:
        self.calls.append("upgrade")
        if "upgrade" in self.errors:
            raise self.errors["upgrade"]
        return self.upgrade


class SlowTendermint(FakeTendermint):
    """Holds every consensus fetch for `delay` seconds, tracking overlap."""

    def __init__(self, *args, delay=0.3, **kwargs):
        super().__init__(*args, **kwargs)
        self.delay = delay
        self.active = 0
        self.peak = 0

    async def get_consensus_state(self):
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            await asyncio.sleep(self.delay)
            return await super().get_consensus_state()
        finally:
            self.active -= 1
