"""Validator roster sources, one per chain type."""

import asyncio
import base64
import hashlib
import logging
from typing import Protocol, runtime_checkable
from urllib.parse import urlencode

import bech32
import httpx
from pydantic import BaseModel, Field, ValidationError

from ..core.config import Settings, get_settings
from ..core.errors import DecodeError, TmtopError
from ..core.types import ChainValidator, Upgrade
from .http import HttpClient

logger = logging.getLogger(__name__)

ED25519_KEY_TYPE = "/cosmos.crypto.ed25519.PubKey"


@runtime_checkable
class DataFetcher(Protocol):
    """Supplies validator identities and the scheduled upgrade plan.

    Implementations:
        - NoopDataFetcher: plain Tendermint chains without a staking module
        - CosmosLcdDataFetcher: Cosmos SDK chains through the LCD REST API
    """

    async def get_validators(self) -> list[ChainValidator]:
        """Roster of validators keyed by their consensus address."""
        ...

    async def get_upgrade_plan(self) -> Upgrade | None:
        """Currently scheduled upgrade, or None if there is none."""
        ...


class NoopDataFetcher:
    """Roster source for chains with nothing to query."""

    async def get_validators(self) -> list[ChainValidator]:
        return []

    async def get_upgrade_plan(self) -> Upgrade | None:
        return None


class LcdPubKey(BaseModel):
    type: str = Field(default="", alias="@type")
    key: str = ""


class LcdDescription(BaseModel):
    moniker: str = ""


class LcdValidator(BaseModel):
    operator_address: str
    consensus_pubkey: LcdPubKey
    description: LcdDescription = Field(default_factory=LcdDescription)


class LcdValidatorsResponse(BaseModel):
    validators: list[LcdValidator] = Field(default_factory=list)


class LcdPlan(BaseModel):
    name: str
    height: int


class LcdCurrentPlanResponse(BaseModel):
    plan: LcdPlan | None = None


class CosmosLcdDataFetcher:
    """Roster and upgrade plan from a Cosmos SDK LCD endpoint.

    For consumer chains the roster lives on the provider chain, and every
    validator may have assigned a different consensus key on the consumer.
    """

    def __init__(
        self,
        settings: Settings | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ):
        self.settings = settings or get_settings()
        if not self.settings.lcd_host:
            raise ValueError("lcd_host is required for the cosmos-lcd roster source")

        self.client = HttpClient(
            self.settings.lcd_host,
            invoker="cosmos_lcd_data_fetcher",
            timeout=self.settings.request_timeout,
            transport=transport,
        )
        self.provider_client: HttpClient | None = None
        if self.settings.provider_lcd_host:
            self.provider_client = HttpClient(
                self.settings.provider_lcd_host,
                invoker="cosmos_lcd_provider_fetcher",
                timeout=self.settings.request_timeout,
                transport=transport,
            )

    def _roster_client(self) -> HttpClient:
        return self.provider_client or self.client

    async def get_validators(self) -> list[ChainValidator]:
        payload = await self._roster_client().get(
            "/cosmos/staking/v1beta1/validators"
            "?status=BOND_STATUS_BONDED&pagination.limit=1000"
        )
        try:
            response = LcdValidatorsResponse.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"malformed validators response: {e}") from e

        validators = []
        for validator in response.validators:
            chain_validator = parse_lcd_validator(validator)
            if chain_validator is not None:
                validators.append(chain_validator)

        if self.provider_client is None:
            return validators

        return list(
            await asyncio.gather(
                *(
                    self._with_assigned_key(self.provider_client, validator)
                    for validator in validators
                )
            )
        )

    async def _with_assigned_key(
        self, provider_client: HttpClient, validator: ChainValidator
    ) -> ChainValidator:
        """Attach the consumer key a provider validator assigned, if any."""
        query = urlencode(
            {
                "chain_id": self.settings.consumer_chain_id,
                "provider_address": validator.raw_address,
            }
        )
        try:
            payload = await provider_client.get(
                f"/interchain_security/ccv/provider/validator_consumer_addr?{query}"
            )
        except TmtopError as e:
            logger.error(f"Could not fetch assigned key for {validator.moniker}: {e}")
            return validator

        consumer_address = payload.get("consumer_address") if isinstance(payload, dict) else None
        if not consumer_address:
            return validator

        raw_bytes = bech32_to_bytes(consumer_address)
        if raw_bytes is None:
            logger.warning(f"Invalid consumer address for {validator.moniker}: {consumer_address}")
            return validator

        return validator.model_copy(
            update={
                "assigned_address": consumer_address,
                "raw_assigned_address": raw_bytes.hex().upper(),
            }
        )

    async def get_upgrade_plan(self) -> Upgrade | None:
        payload = await self.client.get("/cosmos/upgrade/v1beta1/current_plan")
        try:
            response = LcdCurrentPlanResponse.model_validate(payload)
        except ValidationError as e:
            raise DecodeError(f"malformed upgrade plan response: {e}") from e

        if response.plan is None:
            return None

        return Upgrade(name=response.plan.name, height=response.plan.height)


def parse_lcd_validator(validator: LcdValidator) -> ChainValidator | None:
    """Derive consensus addresses from an LCD validator entry.

    Returns None for key types whose address derivation is not supported.
    """
    pubkey = validator.consensus_pubkey
    if pubkey.type != ED25519_KEY_TYPE:
        logger.warning(
            f"Skipping {validator.description.moniker}: unsupported key type {pubkey.type}"
        )
        return None

    try:
        key_bytes = base64.b64decode(pubkey.key, validate=True)
    except ValueError as e:
        raise DecodeError(f"invalid consensus key for {validator.operator_address}") from e

    address = hashlib.sha256(key_bytes).digest()[:20]

    return ChainValidator(
        moniker=validator.description.moniker,
        address=address.hex().upper(),
        raw_address=bytes_to_bech32(valcons_prefix(validator.operator_address), address),
    )


def valcons_prefix(operator_address: str) -> str:
    """`cosmosvaloper1...` -> `cosmosvalcons`."""
    hrp = operator_address.rsplit("1", 1)[0]
    if hrp.endswith("valoper"):
        return hrp[: -len("valoper")] + "valcons"
    return hrp + "valcons"


def bytes_to_bech32(hrp: str, data: bytes) -> str:
    return bech32.bech32_encode(hrp, bech32.convertbits(data, 8, 5))


def bech32_to_bytes(address: str) -> bytes | None:
    _, data = bech32.bech32_decode(address)
    if data is None:
        return None
    decoded = bech32.convertbits(data, 5, 8, False)
    if decoded is None:
        return None
    return bytes(decoded)


def get_data_fetcher(
    settings: Settings | None = None,
    transport: httpx.AsyncBaseTransport | None = None,
) -> DataFetcher:
    """Pick the roster source matching the configured chain type."""
    settings = settings or get_settings()

    if settings.chain_type == "cosmos-lcd":
        return CosmosLcdDataFetcher(settings, transport=transport)

    return NoopDataFetcher()
