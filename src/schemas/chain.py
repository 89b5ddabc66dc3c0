"""Chain state values handed out by beacon clients.

Unlike the structs in `schemas.beacon_api`, numeric fields here
are integers parsed from the decimal strings beacon nodes send.
"""

from __future__ import annotations

from typing import Any

import msgspec

from schemas import SchemaBeaconAPI

UINT64_MAX = 2**64 - 1

PUBKEY_PREFIX = "0x"


def parse_uint64(value: str) -> int:
    """Parses a decimal string into an unsigned 64-bit integer.

    Raises ValueError for anything that is not a plain decimal
    number in the uint64 range (signs, whitespace, floats, ...).
    """
    if not value.isascii() or not value.isdigit():
        raise ValueError(f"Not a decimal uint64 string: {value!r}")
    parsed = int(value)
    if parsed > UINT64_MAX:
        raise ValueError(f"Value out of uint64 range: {value}")
    return parsed


def normalize_pubkey(pubkey: str) -> str:
    normalized = pubkey.strip().lower()
    if not normalized.startswith(PUBKEY_PREFIX):
        normalized = PUBKEY_PREFIX + normalized
    return normalized


class HeadEvent(msgspec.Struct, frozen=True):
    slot: int
    block: str
    state: str

    @classmethod
    def from_api(cls, event: SchemaBeaconAPI.HeadEvent) -> HeadEvent:
        return cls(
            slot=parse_uint64(event.slot),
            block=event.block,
            state=event.state,
        )


class SyncStatus(msgspec.Struct, frozen=True):
    head_slot: int
    is_syncing: bool
    sync_distance: int = 0
    is_optimistic: bool = False

    @classmethod
    def from_api(cls, status: SchemaBeaconAPI.SyncStatus) -> SyncStatus:
        return cls(
            head_slot=parse_uint64(status.head_slot),
            is_syncing=status.is_syncing,
            sync_distance=parse_uint64(status.sync_distance),
            is_optimistic=status.is_optimistic,
        )


class ValidatorEntry(msgspec.Struct, frozen=True):
    index: int
    balance: str
    status: str
    pubkey: str

    @classmethod
    def from_api(cls, info: SchemaBeaconAPI.ValidatorInfo) -> ValidatorEntry:
        return cls(
            index=parse_uint64(info.index),
            balance=info.balance,
            status=info.status,
            pubkey=info.validator.pubkey,
        )


class ProposerDuty(msgspec.Struct, frozen=True):
    pubkey: str
    slot: int
    validator_index: int


class ProposerDuties(msgspec.Struct, frozen=True):
    dependent_root: str
    duties: list[ProposerDuty]

    @classmethod
    def from_api(
        cls, response: SchemaBeaconAPI.GetProposerDutiesResponse
    ) -> ProposerDuties:
        return cls(
            dependent_root=response.dependent_root,
            duties=[
                ProposerDuty(
                    pubkey=d.pubkey,
                    slot=parse_uint64(d.slot),
                    validator_index=parse_uint64(d.validator_index),
                )
                for d in response.data
            ],
        )


class BlockHeader(msgspec.Struct, frozen=True):
    root: str
    slot: int
    proposer_index: int
    parent_root: str
    state_root: str

    @classmethod
    def from_api(cls, header: SchemaBeaconAPI.BlockHeader) -> BlockHeader:
        message = header.header.message
        return cls(
            root=header.root,
            slot=parse_uint64(message.slot),
            proposer_index=parse_uint64(message.proposer_index),
            parent_root=message.parent_root,
            state_root=message.state_root,
        )


class Block(msgspec.Struct, frozen=True):
    version: str | None
    slot: int
    message: dict  # type: ignore[type-arg]

    @classmethod
    def from_api(cls, response: SchemaBeaconAPI.GetBlockResponse) -> Block:
        message = response.data.message
        return cls(
            version=response.version,
            slot=parse_uint64(message.slot),
            message=msgspec.to_builtins(message),
        )

    @property
    def execution_payload(self) -> dict | None:  # type: ignore[type-arg]
        return self.message.get("body", {}).get("execution_payload")  # type: ignore[no-any-return]


class Genesis(msgspec.Struct, frozen=True):
    genesis_time: int
    genesis_validators_root: str
    genesis_fork_version: str

    @classmethod
    def from_api(cls, genesis: SchemaBeaconAPI.Genesis) -> Genesis:
        return cls(
            genesis_time=parse_uint64(genesis.genesis_time),
            genesis_validators_root=genesis.genesis_validators_root,
            genesis_fork_version=genesis.genesis_fork_version,
        )


def _spec_value(values: dict[str, Any], key: str) -> str:
    try:
        value = values[key]
    except KeyError as e:
        raise ValueError(f"Spec value missing: {e}") from e
    if not isinstance(value, str):
        raise ValueError(f"Spec value {key} is not a string: {value!r}")
    return value


class ChainSpec(msgspec.Struct, frozen=True):
    seconds_per_slot: int
    slots_per_epoch: int
    deposit_contract_address: str
    deposit_network_id: int
    values: dict[str, Any]

    @classmethod
    def from_api(cls, values: dict[str, Any]) -> ChainSpec:
        return cls(
            seconds_per_slot=parse_uint64(_spec_value(values, "SECONDS_PER_SLOT")),
            slots_per_epoch=parse_uint64(_spec_value(values, "SLOTS_PER_EPOCH")),
            deposit_contract_address=_spec_value(values, "DEPOSIT_CONTRACT_ADDRESS"),
            deposit_network_id=parse_uint64(
                _spec_value(values, "DEPOSIT_NETWORK_ID")
            ),
            values=values,
        )


class Fork(msgspec.Struct, frozen=True):
    previous_version: str
    current_version: str
    epoch: int

    @classmethod
    def from_api(cls, fork: SchemaBeaconAPI.Fork) -> Fork:
        return cls(
            previous_version=fork.previous_version,
            current_version=fork.current_version,
            epoch=parse_uint64(fork.epoch),
        )


class Withdrawal(msgspec.Struct, frozen=True):
    index: int
    validator_index: int
    address: str
    amount: int

    @classmethod
    def from_api(cls, withdrawal: SchemaBeaconAPI.Withdrawal) -> Withdrawal:
        return cls(
            index=parse_uint64(withdrawal.index),
            validator_index=parse_uint64(withdrawal.validator_index),
            address=withdrawal.address,
            amount=parse_uint64(withdrawal.amount),
        )
