"""Semantic queries against a Tendermint node's RPC."""

import logging
from datetime import timedelta
from typing import Any, TypeVar

import httpx
from pydantic import BaseModel, ValidationError

from ..core.config import get_settings
from ..core.errors import BlockTimeError, DecodeError, HttpStatusError, RPCError
from ..core.rpc_types import (
    BlockHeader,
    ConsensusRoundState,
    DumpConsensusRoundState,
    StatusResult,
    TendermintValidator,
    ValidatorsResult,
)
from ..core.types import NodeStatus
from .http import HttpClient

logger = logging.getLogger(__name__)

VALIDATORS_PER_PAGE = 100

# Reported by /validators between genesis and the first block
NO_VALIDATOR_SET_ERROR = "could not find validator set for height"

ModelT = TypeVar("ModelT", bound=BaseModel)


class TendermintRPC:
    """Node RPC gateway: consensus state, validators, status and blocks."""

    def __init__(
        self,
        rpc_host: str | None = None,
        timeout: float | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.client = HttpClient(
            rpc_host or get_settings().rpc_host,
            invoker="tendermint_rpc",
            timeout=timeout,
            transport=transport,
        )

    async def get_consensus_state(self) -> ConsensusRoundState:
        """Current round state. A failure is returned as-is, never retried."""
        result = await self._query("/consensus_state")
        return _parse(ConsensusRoundState, _field(result, "round_state"), "/consensus_state")

    async def get_validators(self) -> list[TendermintValidator]:
        """Validator set of the latest height, fetched page by page.

        Between genesis and the first block the node has no validator set for
        the height and says so; the set embedded in the consensus state dump is
        used instead. Any other error propagates.
        """
        try:
            return await self._get_validators_paginated()
        except RPCError as e:
            if NO_VALIDATOR_SET_ERROR not in f"{e.message} {e.data}":
                raise
            logger.info("No validator set for the current height yet, using consensus state dump")
            return await self.get_validators_via_dump_state()

    async def _get_validators_paginated(self) -> list[TendermintValidator]:
        validators: list[TendermintValidator] = []
        page = 1

        while True:
            url = f"/validators?page={page}&per_page={VALIDATORS_PER_PAGE}"
            response = _parse(ValidatorsResult, await self._query(url), url)

            try:
                total = int(response.total)
            except ValueError as e:
                raise DecodeError(f"invalid validators total: {response.total!r}") from e

            validators.extend(response.validators)
            if len(validators) >= total:
                break

            if not response.validators:
                raise DecodeError(
                    f"validators page {page} is empty, got {len(validators)} of {total}"
                )

            page += 1

        return validators

    async def get_validators_via_dump_state(self) -> list[TendermintValidator]:
        """Validator list embedded in /dump_consensus_state."""
        result = await self._query("/dump_consensus_state")
        round_state = _parse(
            DumpConsensusRoundState,
            _field(result, "round_state"),
            "/dump_consensus_state",
        )
        return round_state.validators.validators

    async def get_status(self) -> NodeStatus:
        result = _parse(StatusResult, await self._query("/status"), "/status")
        return NodeStatus(
            node_id=result.node_info.id,
            moniker=result.node_info.moniker,
            network=result.node_info.network,
            version=result.node_info.version,
            latest_block_height=result.sync_info.latest_block_height,
            latest_block_time=result.sync_info.latest_block_time,
            catching_up=result.sync_info.catching_up,
            validator_address=result.validator_info.address,
        )

    async def get_block(self, height: int | None = None) -> BlockHeader:
        """Header of the block at `height`, or of the latest block."""
        url = "/block" if height is None else f"/block?height={height}"
        result = await self._query(url)
        block = _field(result, "block")
        return _parse(BlockHeader, _field(block, "header"), url)

    async def get_block_time(self, blocks_behind: int | None = None) -> timedelta:
        """Average block time over the last `blocks_behind` blocks."""
        if blocks_behind is None:
            blocks_behind = get_settings().blocks_behind

        latest = await self.get_block()
        # Never ask for a height below the first block
        older_height = max(1, latest.height - blocks_behind)
        older = await self.get_block(older_height)

        blocks_diff = latest.height - older.height
        if blocks_diff <= 0:
            raise BlockTimeError(
                f"cannot estimate block time: latest height {latest.height}, "
                f"older height {older.height}"
            )

        return (latest.time - older.time) / blocks_diff

    async def _query(self, relative_url: str) -> Any:
        """GET a JSON-RPC endpoint and unwrap its `result`."""
        try:
            payload = await self.client.get(relative_url)
        except HttpStatusError as e:
            # Tendermint reports RPC errors with a non-2xx status and a JSON body
            if isinstance(e.body, dict) and e.body.get("error"):
                raise _rpc_error(e.body["error"]) from e
            raise

        if not isinstance(payload, dict):
            raise DecodeError(f"unexpected response from {relative_url}")

        if payload.get("error"):
            raise _rpc_error(payload["error"])

        if "result" not in payload:
            raise DecodeError(f"response from {relative_url} has no result")

        return payload["result"]


def _rpc_error(error: Any) -> RPCError:
    if not isinstance(error, dict):
        return RPCError(str(error))
    return RPCError(
        message=str(error.get("message", "")),
        data=str(error.get("data") or ""),
        code=error.get("code"),
    )


def _field(payload: Any, name: str) -> Any:
    if not isinstance(payload, dict) or payload.get(name) is None:
        raise DecodeError(f"malformed response from node: missing {name}")
    return payload[name]


def _parse(model: type[ModelT], payload: Any, source: str) -> ModelT:
    try:
        return model.model_validate(payload)
    except ValidationError as e:
        raise DecodeError(f"malformed response from {source}: {e}") from e
