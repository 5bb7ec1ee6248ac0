# backend/tradeledger/services/constants.py
"""
Centralized constants for the Trade Ledger services.

Single source of truth for the business constants used by the valuation
engine: ledger categories, the ticker-to-identifier map of the market data
service, precision, and the defaults behind the PRICE_* settings.

Usage:
    from tradeledger.services.constants import (
        INVESTMENT_CATEGORIES,
        SYMBOL_TO_ID_MAP,
        MONEY_QUANTUM,
    )
"""

from decimal import Decimal

from tradeledger.models import TradeCategory


# =============================================================================
# LEDGER CATEGORIES
# =============================================================================

# Entries netted into positions and priced from the market
SPOT_CATEGORIES: frozenset[TradeCategory] = frozenset({TradeCategory.SPOT})

# Trades (as opposed to investment products), used for dashboard counts
TRADE_CATEGORIES: frozenset[TradeCategory] = frozenset({
    TradeCategory.SPOT,
    TradeCategory.FUTURES,
})

# Valued from the trader's manual profit_loss, never priced externally
INVESTMENT_CATEGORIES: frozenset[TradeCategory] = frozenset({
    TradeCategory.DEFI,
    TradeCategory.DUAL_INVESTMENT,
    TradeCategory.LIQUIDITY_POOL,
    TradeCategory.LIQUIDITY_MINING,
})

# Keys in Trade.details that carry the side of a spot/futures entry
SIDE_DETAIL_KEYS: tuple[str, ...] = ("buy_sell", "side")
SELL_SIDE: str = "sell"


# =============================================================================
# CURRENCIES
# =============================================================================

SUPPORTED_CURRENCIES: frozenset[str] = frozenset({"USD", "PHP"})


# =============================================================================
# PRECISION
# =============================================================================

# Money amounts and percentages are reported to the cent
MONEY_QUANTUM: Decimal = Decimal("0.01")
PERCENT_QUANTUM: Decimal = Decimal("0.01")

# Average cost per unit keeps crypto precision (satoshi scale)
UNIT_PRICE_QUANTUM: Decimal = Decimal("0.00000001")

ZERO: Decimal = Decimal("0")
HUNDRED: Decimal = Decimal("100")


# =============================================================================
# MARKET DATA SERVICE
# =============================================================================

PRICE_PROVIDER_NAME: str = "coingecko"

# Header carrying the optional demo API key
PRICE_API_KEY_HEADER: str = "x-cg-demo-api-key"

# Quote lifetime: 30 minutes
PRICE_CACHE_TTL_SECONDS: float = 1800.0

# Awaited after every outbound call, single or batch
PRICE_RATE_LIMIT_DELAY_SECONDS: float = 3.0

# Applied to every outbound request
PRICE_REQUEST_TIMEOUT_SECONDS: float = 10.0

# Ticker symbol -> canonical identifier of the market data service.
# Symbols missing here are sent lower-cased as a best effort.
SYMBOL_TO_ID_MAP: dict[str, str] = {
    "BTC": "bitcoin",
    "ETH": "ethereum",
    "BNB": "binancecoin",
    "ADA": "cardano",
    "DOT": "polkadot",
    "XRP": "ripple",
    "LTC": "litecoin",
    "BCH": "bitcoin-cash",
    "LINK": "chainlink",
    "UNI": "uniswap",
    "USDT": "tether",
    "USDC": "usd-coin",
    "BUSD": "binance-usd",
    "DAI": "dai",
    "MATIC": "matic-network",
    "AVAX": "avalanche-2",
    "SOL": "solana",
    "ATOM": "cosmos",
    "FTM": "fantom",
    "NEAR": "near",
    "ALGO": "algorand",
    "VET": "vechain",
    "ICP": "internet-computer",
    "THETA": "theta-token",
    "TRX": "tron",
    "EOS": "eos",
    "AAVE": "aave",
    "MKR": "maker",
    "COMP": "compound-governance-token",
    "YFI": "yearn-finance",
    "SUSHI": "sushi",
    "CRV": "curve-dao-token",
    "SNX": "synthetix-network-token",
    "1INCH": "1inch",
    "BAL": "balancer",
    "ZRX": "0x",
    "KNC": "kyber-network-crystal",
    "LRC": "loopring",
    "REN": "republic-protocol",
    "BAND": "band-protocol",
    "STORJ": "storj",
    "ANT": "aragon",
    "REP": "augur",
    "ZEC": "zcash",
    "XMR": "monero",
    "DASH": "dash",
    "DCR": "decred",
    "ZIL": "zilliqa",
}


# =============================================================================
# CIRCUIT BREAKER SETTINGS
# =============================================================================

# Consecutive failures before the circuit opens
CIRCUIT_BREAKER_FAILURE_THRESHOLD: int = 5

# Seconds to wait before testing if the service has recovered
CIRCUIT_BREAKER_RECOVERY_TIMEOUT: float = 60.0

# One trial call is enough; each call already costs the rate-limit delay
CIRCUIT_BREAKER_HALF_OPEN_MAX_CALLS: int = 1
