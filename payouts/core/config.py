"""
Configuration management using Pydantic Settings.
Registries, budgets and chain endpoints are all environment-driven so a
payout run can be pointed at a fork or a testnet without code changes.
"""

from decimal import Decimal
from typing import Dict, List, Optional

from pydantic import BaseModel, Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from payouts import __version__

from .exceptions import ConfigurationError


MAINNET = "mainnet"
OPTIMISM = "optimism"


class ChainSettings(BaseModel):
    """Endpoints and contract addresses for a single chain."""
    chain_id: int
    rpc_url: str
    blocks_subgraph_url: str
    safe_service_url: str
    history_api_url: str = "https://api.etherscan.io/v2/api"
    multisend_address: str = "0x40A2aCCbd92BCA938b02010E17A5b8929b49130D"
    explorer_url: str = "https://etherscan.io"

    def address_url(self, address: str) -> str:
        return f"{self.explorer_url.rstrip('/')}/address/{address}"

    def block_url(self, number: int) -> str:
        return f"{self.explorer_url.rstrip('/')}/block/{number}"


class TokenSettings(BaseModel):
    """ERC-20 token used to pay recipients."""
    chain: str
    address: str
    symbol: str
    decimals: int = 18


class RateTierSettings(BaseModel):
    """One breakpoint of a tiered fee-rate table; `limit=None` is the catch-all."""
    limit: Optional[Decimal] = None
    rate: Decimal
    inclusive: bool = False


class CouncilSettings(BaseModel):
    """A council whose members are the holders of a seat NFT."""
    name: str
    nft_address: str
    stipend: Decimal
    chain: str = OPTIMISM


class Settings(BaseSettings):
    """Application settings with environment-based configuration."""

    # Application
    app_name: str = "SNX Payout Tool"
    app_version: str = __version__
    environment: str = Field(default="development")

    # Logging
    log_level: str = "INFO"
    log_format: str = "console"  # json or console
    log_file: Optional[str] = None

    # Chains
    chains: Dict[str, ChainSettings] = Field(default_factory=lambda: {
        MAINNET: ChainSettings(
            chain_id=1,
            rpc_url="https://eth.llamarpc.com",
            blocks_subgraph_url="https://api.thegraph.com/subgraphs/name/blocklytics/ethereum-blocks",
            safe_service_url="https://safe-transaction-mainnet.safe.global",
            explorer_url="https://etherscan.io",
        ),
        OPTIMISM: ChainSettings(
            chain_id=10,
            rpc_url="https://mainnet.optimism.io",
            blocks_subgraph_url="https://api.thegraph.com/subgraphs/name/noahlitvin/optimism-blocks",
            safe_service_url="https://safe-transaction-optimism.safe.global",
            multisend_address="0xA1dabEF33b3B82c7814B6D82A79e50F4AC44102B",
            explorer_url="https://optimistic.etherscan.io",
        ),
    })

    # Activity indexers
    exchanger_subgraph_url: str = "https://api.thegraph.com/subgraphs/name/synthetixio-team/synthetix-exchanger"
    exchanger_l2_subgraph_url: Optional[str] = "https://api.thegraph.com/subgraphs/name/synthetixio-team/optimism-exchanger"
    perps_subgraph_url: str = "https://api.thegraph.com/subgraphs/name/synthetix-perps/perps"
    rates_subgraph_url: str = "https://api.thegraph.com/subgraphs/name/synthetixio-team/synthetix-rates"

    # Tokens
    snx_token_l1: TokenSettings = TokenSettings(
        chain=MAINNET, address="0xC011a73ee8576Fb46F5E1c5751cA3B9Fe0af2a6F", symbol="SNX"
    )
    snx_token_l2: TokenSettings = TokenSettings(
        chain=OPTIMISM, address="0x8700dAec35aF8Ff88c16BdF0418774CB3D7599B4", symbol="SNX"
    )
    susd_token_l1: TokenSettings = TokenSettings(
        chain=MAINNET, address="0x57Ab1ec28D129707052df4dF418D58a2D46d5f51", symbol="sUSD"
    )

    # Paying safes
    partners_safe_l1: Optional[str] = "0xee8C74634fc1590Ab7510a655F53159524ed0aC5"
    partners_safe_l2: Optional[str] = None
    council_safe: Optional[str] = None

    # Registries
    partner_addresses_l1: Dict[str, str] = Field(default_factory=lambda: {
        "CURVE": "0x07Aeeb7E544A070a2553e142828fb30c214a1F86",
        "DHEDGE": "0x07Aeeb7E544A070a2553e142828fb30c214a1F86",
        "1INCH": "0x07Aeeb7E544A070a2553e142828fb30c214a1F86",
        "ENZYME": "0x07Aeeb7E544A070a2553e142828fb30c214a1F86",
        "SADDLE": "0x07Aeeb7E544A070a2553e142828fb30c214a1F86",
    })
    partner_addresses_l2: Dict[str, str] = Field(default_factory=dict)
    councils: List[CouncilSettings] = Field(default_factory=list)

    # Allocation policies
    partners_total_distribution: Decimal = Decimal("10000")
    perps_rate_tiers: List[RateTierSettings] = Field(default_factory=lambda: [
        RateTierSettings(limit=Decimal("1000000"), rate=Decimal("0.1")),
        RateTierSettings(limit=Decimal("5000000"), rate=Decimal("0.075"), inclusive=True),
        # Top tier rate looks like a typo for 0.05; kept until confirmed.
        RateTierSettings(limit=None, rate=Decimal("0.5")),
    ])

    # Seat enumeration
    council_payout_chain: str = OPTIMISM
    max_council_seats: int = 30
    prefer_total_supply: bool = True

    # Period resolution; None means the host's local time zone
    payout_timezone: Optional[str] = None

    # Submission
    safe_batch_chunk_size: int = 50
    safe_origin: str = "SNX Payout Tool"
    signer_private_key: Optional[str] = None

    # Transfer history
    etherscan_api_key: Optional[str] = None

    # HTTP
    http_timeout: int = 30

    model_config = SettingsConfigDict(
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    @field_validator("environment")
    @classmethod
    def validate_environment(cls, v: str) -> str:
        allowed = ["development", "staging", "production"]
        if v not in allowed:
            raise ValueError(f"Environment must be one of: {allowed}")
        return v

    @field_validator("log_level")
    @classmethod
    def validate_log_level(cls, v: str) -> str:
        allowed = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
        if v.upper() not in allowed:
            raise ValueError(f"Log level must be one of: {allowed}")
        return v.upper()

    @field_validator("safe_batch_chunk_size", "max_council_seats")
    @classmethod
    def validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("Value must be at least 1")
        return v

    @property
    def is_development(self) -> bool:
        return self.environment == "development"

    def snx_token(self, chain: str) -> TokenSettings:
        """SNX token deployed on a chain."""
        for token in (self.snx_token_l1, self.snx_token_l2):
            if token.chain == chain:
                return token
        raise ConfigurationError(f"No SNX token configured for {chain}", {"chain": chain})

    def chain(self, name: str) -> ChainSettings:
        """Get settings for a chain by name."""
        try:
            return self.chains[name]
        except KeyError:
            raise ConfigurationError(
                f"Unknown chain: {name}",
                {"chain": name, "configured": sorted(self.chains)}
            )


# Global settings instance
settings = Settings()
