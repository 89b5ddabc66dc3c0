from __future__ import annotations

from typing import TYPE_CHECKING

from schemas.chain import normalize_pubkey

if TYPE_CHECKING:
    from collections.abc import Iterable

    from schemas import SchemaChain

# Status filters accepted by the beacon node's validators endpoint,
# each covering all of its sub-statuses (e.g. pending_queued)
VALIDATOR_SET_STATUSES = ["active", "pending"]


def build_validator_set(
    validators: Iterable[SchemaChain.ValidatorEntry],
) -> dict[str, SchemaChain.ValidatorEntry]:
    # The beacon node is not expected to return duplicate pubkeys,
    # if it does the last entry wins
    return {normalize_pubkey(v.pubkey): v for v in validators}
