from .config_store import MerchantConfigStore
from .earnings_store import EarningsAggregator
from .ledger import Ledger
from .wallet_store import WalletStore

__all__ = ["EarningsAggregator", "Ledger", "MerchantConfigStore", "WalletStore"]
