"""The set of operations a beacon node client offers.

`providers.BeaconNode` implements these on top of a single beacon node.
Callers should depend on `BeaconClient` so that other backends
(e.g. one fanning out to multiple beacon nodes) can be swapped in.
"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from collections.abc import AsyncIterator, Callable

    from schemas import SchemaChain


class BeaconClient:
    host: str

    async def get_sync_status(self) -> SchemaChain.SyncStatus:
        raise NotImplementedError

    async def get_current_slot(self) -> int:
        raise NotImplementedError

    async def get_proposer_duties(self, epoch: int) -> SchemaChain.ProposerDuties:
        raise NotImplementedError

    async def get_header(self) -> SchemaChain.BlockHeader:
        raise NotImplementedError

    async def get_header_for_slot(self, slot: int) -> SchemaChain.BlockHeader:
        raise NotImplementedError

    async def get_block(self, block_id: str | int) -> SchemaChain.Block:
        raise NotImplementedError

    async def get_block_for_slot(self, slot: int) -> SchemaChain.Block:
        raise NotImplementedError

    async def publish_block(self, signed_block: Any) -> int:
        raise NotImplementedError

    async def get_genesis(self) -> SchemaChain.Genesis:
        raise NotImplementedError

    async def get_spec(self) -> SchemaChain.ChainSpec:
        raise NotImplementedError

    async def get_fork_schedule(self) -> list[SchemaChain.Fork]:
        raise NotImplementedError

    async def get_randao(self, slot: int) -> str:
        raise NotImplementedError

    async def get_withdrawals(self, slot: int) -> list[SchemaChain.Withdrawal]:
        raise NotImplementedError

    async def get_validators(
        self,
        state_id: str = "head",
        statuses: list[str] | None = None,
    ) -> list[SchemaChain.ValidatorEntry]:
        raise NotImplementedError

    async def fetch_validators(
        self, head_slot: int
    ) -> dict[str, SchemaChain.ValidatorEntry]:
        """Returns the active and pending validators at `head_slot`,
        keyed by normalized public key."""
        raise NotImplementedError

    def subscribe_to_head_events(
        self,
        on_connected: Callable[[], None] | None = None,
    ) -> AsyncIterator[SchemaChain.HeadEvent]:
        raise NotImplementedError
