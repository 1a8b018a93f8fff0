import logging
from decimal import Decimal, InvalidOperation

from eth_utils import is_address
from pydantic import field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

# Chain identifiers this service is usually pointed at
KNOWN_CHAINS = {
    1: 'ethereum',
    5: 'goerli',
    11155111: 'sepolia'
}

NATIVE_ADDRESS = "0xEeeeeEeeeEeEeeEeEeEeeEEEeeeeEeeeeeeeEEeE"
ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"

# Tokens known without a chain lookup: (symbol, name, address, decimals)
MAINNET_TOKENS = [
    ("WETH", "Wrapped Ether", "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2", 18),
    ("USDC", "USD Coin", "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48", 6),
    ("USDT", "Tether USD", "0xdAC17F958D2ee523a2206206994597C13D831ec7", 6),
    ("DAI", "Dai Stablecoin", "0x6B175474E89094C44Da98b954EedeAC495271d0F", 18),
    ("WBTC", "Wrapped BTC", "0x2260FAC5E5542a773Aa44fBCfeDf7C193bc2C599", 8),
    ("UNI", "Uniswap", "0x1f9840a85d5aF5bf1D1762F925BDADdC4201F984", 18),
]


class Settings(BaseSettings):
    model_config = SettingsConfigDict(
        env_file=".env", env_ignore_empty=True, extra="ignore", frozen=True
    )
    RPC_URL: str = "https://eth.llamarpc.com"
    CHAIN_ID: int = 1
    RPC_TIMEOUT: float = 30.0

    # Uniswap V2 mainnet deployment
    FACTORY_ADDRESS: str = "0x5C69bEe701ef814a2B6a3EDD4B1652CB9cc5aA6f"
    ROUTER_ADDRESS: str = "0x7a250d5630B4cF539739dF2C5dAcb4c659F2488D"
    PAIR_INIT_CODE_HASH: str = ""  # Empty: resolve pairs through factory.getPair
    FEE_BPS: int = 30
    WETH_ADDRESS: str = "0xC02aaA39b223FE8D0A0e5C4F27eAD9083C756Cc2"
    USD_REFERENCE_ADDRESS: str = "0xA0b86991c6218b36c1d19D4a2e9Eb0cE3606eB48"

    DEFAULT_SLIPPAGE_BPS: int = 50  # 0.5%
    MAX_INPUT_RESERVE_BPS: int = 5000

    RESERVE_CACHE_TTL: float = 3.0
    REDIS_URL: str = ""

    PRIVATE_KEY: str = ""
    SIMULATION_FALLBACK_ADDRESS: str = "0xd8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
    TOKEN_REGISTRY_PATH: str = ""

    TEST_MODE: bool = False
    TEST_BALANCE: str = "100"
    TEST_GAS_ESTIMATE: int = 150000

    LOG_LEVEL: str = "INFO"

    @field_validator("DEFAULT_SLIPPAGE_BPS", "FEE_BPS")
    @classmethod
    def _check_bps(cls, value: int) -> int:
        if not 0 <= value < 10000:
            raise ValueError(f"basis points must be in [0, 10000), got {value}")
        return value

    @field_validator("MAX_INPUT_RESERVE_BPS")
    @classmethod
    def _check_reserve_ratio(cls, value: int) -> int:
        if value <= 0:
            raise ValueError("MAX_INPUT_RESERVE_BPS must be positive")
        return value

    @field_validator(
        "FACTORY_ADDRESS", "ROUTER_ADDRESS", "WETH_ADDRESS",
        "USD_REFERENCE_ADDRESS", "SIMULATION_FALLBACK_ADDRESS"
    )
    @classmethod
    def _check_address(cls, value: str) -> str:
        if not is_address(value) or value.lower() == ZERO_ADDRESS:
            raise ValueError(f"not a usable address: {value}")
        return value

    @field_validator("TEST_BALANCE")
    @classmethod
    def _check_test_balance(cls, value: str) -> str:
        try:
            parsed = Decimal(value)
        except InvalidOperation:
            raise ValueError(f"TEST_BALANCE is not a decimal: {value}")
        if parsed < 0:
            raise ValueError("TEST_BALANCE cannot be negative")
        return value

    def masked_rpc_url(self) -> str:
        """RPC URL with any query string (API keys) hidden"""
        if "?" in self.RPC_URL:
            return self.RPC_URL.split("?", 1)[0] + "?***"
        return self.RPC_URL


def configure_logging(settings: Settings):
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL.upper(), logging.INFO),
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )
