from dataclasses import dataclass
from typing import Optional


@dataclass
class Wallet:
    owner: str
    address: str
    private_key: str
    mnemonic: Optional[str] = None


@dataclass(frozen=True)
class TokenInfo:
    address: str
    name: str
    symbol: str
    decimals: int
