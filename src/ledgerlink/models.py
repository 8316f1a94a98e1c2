"""Data models for wallets and the remote chain snapshot."""

from typing import Annotated, Any, Dict, Literal, Optional, Tuple, Union

from pydantic import BaseModel, ConfigDict, Field


class BalanceUnknown(BaseModel):
    """Balance not yet fetched from the remote service."""
    model_config = ConfigDict(frozen=True)

    state: Literal["unknown"] = "unknown"

    @property
    def amount(self) -> None:
        return None


class BalanceKnown(BaseModel):
    """Balance as last reported by the remote service."""
    model_config = ConfigDict(frozen=True)

    state: Literal["known"] = "known"
    amount: float


Balance = Annotated[Union[BalanceUnknown, BalanceKnown], Field(discriminator="state")]

UNKNOWN_BALANCE = BalanceUnknown()


class _WalletBase(BaseModel):
    model_config = ConfigDict(frozen=True)

    address: str = Field(min_length=1)
    public_key: str
    balance: Balance = UNKNOWN_BALANCE

    @property
    def balance_amount(self) -> Optional[float]:
        """Last known balance, or None while unknown."""
        return self.balance.amount

    def with_balance(self, amount: float) -> "_WalletBase":
        """Return a copy of this wallet with only the balance replaced.

        The copy keeps the concrete wallet class, so a local wallet keeps
        its private key.
        """
        return self.model_copy(update={"balance": BalanceKnown(amount=amount)})


class LocalWallet(_WalletBase):
    """Wallet created or imported on this client; holds its private key."""
    kind: Literal["local"] = "local"
    private_key: str = Field(min_length=1, repr=False)

    @property
    def is_local(self) -> bool:
        return True


class WatchOnlyWallet(_WalletBase):
    """Wallet tracked by address only."""
    kind: Literal["watch_only"] = "watch_only"

    @property
    def is_local(self) -> bool:
        return False


Wallet = Union[LocalWallet, WatchOnlyWallet]


class WalletRecord(BaseModel):
    """Stored and wire shape of a wallet.

    Mirrors the JSON the remote service returns and the record kept in
    persistent storage: ``{address, publicKey, privateKey?, balance?}``.
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    address: str = Field(min_length=1)
    public_key: str = Field(alias="publicKey")
    private_key: Optional[str] = Field(default=None, alias="privateKey")
    balance: Optional[float] = None

    def to_wallet(self) -> Wallet:
        balance = UNKNOWN_BALANCE if self.balance is None else BalanceKnown(amount=self.balance)
        if self.private_key:
            return LocalWallet(
                address=self.address,
                public_key=self.public_key,
                private_key=self.private_key,
                balance=balance,
            )
        return WatchOnlyWallet(address=self.address, public_key=self.public_key, balance=balance)

    @classmethod
    def from_wallet(cls, wallet: Wallet) -> "WalletRecord":
        return cls(
            address=wallet.address,
            public_key=wallet.public_key,
            private_key=wallet.private_key if isinstance(wallet, LocalWallet) else None,
            balance=wallet.balance_amount,
        )

    def dump(self) -> Dict[str, Any]:
        return self.model_dump(by_alias=True, exclude_none=True)


class Transaction(BaseModel):
    """Transfer between two addresses; no sender means a mining reward."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    from_address: Optional[str] = Field(default=None, alias="fromAddress")
    to_address: str = Field(alias="toAddress")
    amount: float
    timestamp: int
    signature: Optional[str] = None

    @property
    def is_reward(self) -> bool:
        return self.from_address is None


class Block(BaseModel):
    """Block as reported by the remote service."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    index: int
    timestamp: int
    hash: str
    previous_hash: str = Field(alias="previousHash")
    nonce: int
    transactions: Tuple[Transaction, ...] = ()


class ChainSnapshot(BaseModel):
    """Read-only copy of the remote chain, replaced wholesale on each poll."""
    model_config = ConfigDict(frozen=True, populate_by_name=True, extra="ignore")

    chain: Tuple[Block, ...] = ()
    pending_transactions: Tuple[Transaction, ...] = Field(default=(), alias="pendingTransactions")
    difficulty: int = 0
    mining_reward: float = Field(default=0, alias="miningReward")

    @property
    def height(self) -> int:
        return len(self.chain)

    @property
    def latest_block(self) -> Optional[Block]:
        return self.chain[-1] if self.chain else None
