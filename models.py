"""
Balance Snapshot - Data Models
Immutable value types passed between the resolvers and their callers
"""
import json
from dataclasses import dataclass, asdict
from decimal import Decimal
from typing import Any, Dict, Optional

from config import Chain


@dataclass(frozen=True)
class BlockTimestampSample:
    """A probed (block, timestamp) pair. Never persisted."""

    block_number: int
    timestamp: int


@dataclass(frozen=True)
class ResolvedBlock:
    chain: Chain
    block_number: int
    target_timestamp: int

    def to_dict(self) -> Dict[str, Any]:
        return {
            "chain": self.chain.value,
            "block_number": self.block_number,
            "target_timestamp": self.target_timestamp,
        }


@dataclass(frozen=True)
class Asset:
    """A token on a chain. contract_address None means the chain's native asset."""

    chain: Chain
    contract_address: Optional[str] = None
    decimals: int = 18

    def __post_init__(self):
        if self.decimals < 0:
            raise ValueError(f"decimals must be >= 0, got {self.decimals}")
        if self.contract_address is not None and not self.contract_address.strip():
            object.__setattr__(self, 'contract_address', None)

    @property
    def is_native(self) -> bool:
        return self.contract_address is None

    @property
    def address_key(self) -> Optional[str]:
        """Lowercase address used for lookups and cache keys"""
        return self.contract_address.lower() if self.contract_address else None


@dataclass(frozen=True)
class PriceQuote:
    """Fiat value of one whole unit of an asset"""

    usd: float
    eur: float
    chf: float

    def __post_init__(self):
        for currency in ("usd", "eur", "chf"):
            if getattr(self, currency) < 0:
                raise ValueError(f"Negative {currency} price: {getattr(self, currency)}")

    @classmethod
    def from_mapping(cls, data: Optional[Dict[str, Any]]) -> "PriceQuote":
        """Build from a provider response; absent or null fields become 0"""
        data = data or {}
        return cls(
            usd=float(data.get("usd") or 0),
            eur=float(data.get("eur") or 0),
            chf=float(data.get("chf") or 0),
        )

    @classmethod
    def from_json(cls, raw: str) -> "PriceQuote":
        return cls.from_mapping(json.loads(raw))

    def to_json(self) -> str:
        return json.dumps(asdict(self), separators=(',', ':'))

    def to_dict(self) -> Dict[str, float]:
        return asdict(self)


@dataclass(frozen=True)
class TokenBalance:
    raw: int
    decimals: int
    block_number: int

    @property
    def amount(self) -> Decimal:
        return Decimal(self.raw) / (Decimal(10) ** self.decimals)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "block_number": self.block_number,
            "raw": str(self.raw),
            "balance": str(self.amount),
        }
