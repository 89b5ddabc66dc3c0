import schemas.beacon_api as SchemaBeaconAPI
import schemas.chain as SchemaChain

__all__ = [
    "SchemaBeaconAPI",
    "SchemaChain",
]
