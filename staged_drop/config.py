"""
Sale constants and network settings.

The sale constants are shared by the off-chain engine and the on-chain
application; network settings come from the environment, the same way the
deploy script reads them.
"""

import os
from dataclasses import dataclass


MICROALGOS_PER_ALGO = 1_000_000
BASIS_POINTS        = 10_000

# ABI methods of the external applications the drop calls
ISSUED_COUNT_SIGNATURE = "issued_count(address)uint64"
ADD_SHARE_SIGNATURE    = "add_share(address,uint64)void"


@dataclass(frozen=True)
class DropConfig:
    total_cap: int       = 500
    free_pool_size: int  = 11
    max_per_address: int = 10
    whitelist_price: int = 20 * MICROALGOS_PER_ALGO   # microALGO per unit
    public_price: int    = 30 * MICROALGOS_PER_ALGO   # microALGO per unit

    def __post_init__(self):
        if self.free_pool_size > self.total_cap:
            raise ValueError("free pool cannot exceed the total cap")
        if self.max_per_address <= 0:
            raise ValueError("max_per_address must be positive")


DEFAULT_CONFIG = DropConfig()


# ─────────────────────────────────────────────
#  NETWORK
# ─────────────────────────────────────────────

# Algorand Testnet endpoints (free public nodes)
ALGOD_ADDRESS   = os.environ.get("ALGOD_ADDRESS", "https://testnet-api.algonode.cloud")
ALGOD_TOKEN     = os.environ.get("ALGOD_TOKEN", "")   # AlgoNode doesn't need a token
INDEXER_ADDRESS = os.environ.get("INDEXER_ADDRESS", "https://testnet-idx.algonode.cloud")
INDEXER_TOKEN   = os.environ.get("INDEXER_TOKEN", "")

APP_ID         = int(os.environ.get("STAGED_DROP_APP_ID", "0"))
REWARDS_APP_ID = int(os.environ.get("STAGED_DROP_REWARDS_APP_ID", "0"))
SIBLING_APP_ID = int(os.environ.get("STAGED_DROP_SIBLING_APP_ID", "0"))

MNEMONIC_ENV = "STAGED_DROP_MNEMONIC"
LOG_LEVEL    = os.environ.get("STAGED_DROP_LOG_LEVEL", "INFO")

EXPLORER_URL = "https://testnet.explorer.perawallet.app"
