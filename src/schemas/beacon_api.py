"""API response models for the Beacon Node API.

Numeric values are transmitted as decimal strings by beacon nodes
and are kept as strings here. Conversion into integers happens
when building the values in `schemas.chain`.

Useful links:

https://github.com/ethereum/beacon-APIs
https://ethereum.github.io/beacon-APIs/
"""

from typing import Any

import msgspec


# Node
class SyncStatus(msgspec.Struct):
    head_slot: str
    is_syncing: bool
    sync_distance: str = "0"
    is_optimistic: bool = False


class GetSyncStatusResponse(msgspec.Struct):
    data: SyncStatus


class NodeVersion(msgspec.Struct):
    version: str


class GetNodeVersionResponse(msgspec.Struct):
    data: NodeVersion


# Validators
class Validator(msgspec.Struct):
    pubkey: str


class ValidatorInfo(msgspec.Struct):
    index: str
    balance: str
    status: str
    validator: Validator


class GetStateValidatorsResponse(msgspec.Struct):
    data: list[ValidatorInfo]


# Duty endpoints responses
class ProposerDuty(msgspec.Struct, frozen=True):
    pubkey: str
    validator_index: str
    slot: str


class GetProposerDutiesResponse(msgspec.Struct):
    dependent_root: str
    data: list[ProposerDuty]


# Headers and blocks
class BeaconBlockHeaderMessage(msgspec.Struct):
    slot: str
    proposer_index: str
    parent_root: str
    state_root: str
    body_root: str = ""


class SignedBeaconBlockHeader(msgspec.Struct):
    message: BeaconBlockHeaderMessage
    signature: str = ""


class BlockHeader(msgspec.Struct):
    root: str
    header: SignedBeaconBlockHeader
    canonical: bool = True


class GetBlockHeaderResponse(msgspec.Struct):
    data: BlockHeader


class BeaconBlockMessage(msgspec.Struct):
    slot: str
    proposer_index: str = ""
    parent_root: str = ""
    state_root: str = ""
    body: dict = {}  # type: ignore[type-arg]


class SignedBeaconBlock(msgspec.Struct):
    message: BeaconBlockMessage
    signature: str = ""


class GetBlockResponse(msgspec.Struct):
    data: SignedBeaconBlock
    version: str | None = None


# Genesis and config
class Genesis(msgspec.Struct):
    genesis_time: str
    genesis_validators_root: str
    genesis_fork_version: str


class GetGenesisResponse(msgspec.Struct):
    data: Genesis


class GetSpecResponse(msgspec.Struct):
    # Not every config value is a string (e.g. BLOB_SCHEDULE is a list)
    data: dict[str, Any]


class Fork(msgspec.Struct):
    previous_version: str
    current_version: str
    epoch: str


class GetForkScheduleResponse(msgspec.Struct):
    data: list[Fork]


# State
class Randao(msgspec.Struct):
    randao: str


class GetRandaoResponse(msgspec.Struct):
    data: Randao


class Withdrawal(msgspec.Struct):
    index: str
    validator_index: str
    address: str
    amount: str


class Withdrawals(msgspec.Struct):
    withdrawals: list[Withdrawal]


class GetWithdrawalsResponse(msgspec.Struct):
    data: Withdrawals


# Events
class HeadEvent(msgspec.Struct):
    slot: str
    block: str
    state: str
