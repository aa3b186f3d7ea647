"""Feature modules for fil-quick-wallet.

- monitoring: confirmation tracking for pushed messages
- multisig: multisig coordination and miner/signer recipes
"""

from filwallet.features import monitoring
from filwallet.features import multisig

__all__ = ["monitoring", "multisig"]
