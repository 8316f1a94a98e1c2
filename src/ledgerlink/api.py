"""Local HTTP API over a LedgerSession, using FastAPI."""

from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional, Union

from fastapi import FastAPI, HTTPException, Request
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from ledgerlink import __version__
from ledgerlink.errors import (
    DuplicateWallet,
    InvalidInput,
    LedgerClientError,
    RemoteRejection,
    SessionClosed,
    TransportFailure,
)
from ledgerlink.models import Block, ChainSnapshot, LocalWallet, Transaction, Wallet
from ledgerlink.notifications import Notification, NotificationKind
from ledgerlink.session import LedgerSession


class WalletView(BaseModel):
    """Wallet as shown to the presentation layer (never includes the key)."""
    address: str
    public_key: str = Field(serialization_alias="publicKey")
    balance: Optional[float] = None
    local: bool

    @classmethod
    def from_wallet(cls, wallet: Wallet) -> "WalletView":
        return cls(
            address=wallet.address,
            public_key=wallet.public_key,
            balance=wallet.balance_amount,
            local=isinstance(wallet, LocalWallet),
        )


class ImportRequest(BaseModel):
    """Wallet import request model."""
    private_key: str = Field(alias="privateKey")


class TransactionRequest(BaseModel):
    """Transfer request model."""
    from_address: str = Field(alias="fromAddress")
    to_address: str = Field(alias="toAddress")
    amount: Union[float, str]
    private_key: Optional[str] = Field(default=None, alias="privateKey")


class MineRequest(BaseModel):
    """Mining request model."""
    miner_address: str = Field(alias="minerAddress")


class ViewRequest(BaseModel):
    """View change request model."""
    view: str


_STATUS_CODES = {
    InvalidInput: 400,
    DuplicateWallet: 409,
    RemoteRejection: 422,
    TransportFailure: 502,
    SessionClosed: 503,
}


def _notification_dict(notification: Optional[Notification]) -> Optional[Dict[str, Any]]:
    if notification is None:
        return None
    return {
        "message": notification.message,
        "timeout": notification.timeout,
        "createdAt": notification.created_at,
    }


class APIServer:
    """HTTP surface for a LedgerSession."""

    def __init__(self, session: LedgerSession) -> None:
        """Initialize the API server.

        Args:
            session: Session opened on startup and closed on shutdown
        """
        self.session = session
        self.app = FastAPI(title="ledgerlink client API", version=__version__, lifespan=self._lifespan)
        self.app.add_exception_handler(LedgerClientError, self._handle_client_error)
        self._setup_routes()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI) -> AsyncIterator[None]:
        await self.session.open()
        try:
            yield
        finally:
            await self.session.close()

    async def _handle_client_error(self, request: Request, exc: Exception) -> JSONResponse:
        status = next(
            (code for error_type, code in _STATUS_CODES.items() if isinstance(exc, error_type)),
            500,
        )
        return JSONResponse(status_code=status, content={"error": type(exc).__name__, "message": str(exc)})

    def _setup_routes(self) -> None:
        """Set up API routes."""
        session = self.session

        @self.app.get("/health")
        async def health() -> Dict[str, Any]:
            """Health check endpoint."""
            chain = session.chain
            return {
                "status": "healthy",
                "wallets": len(session.wallets),
                "chainHeight": chain.height if chain else None,
            }

        @self.app.get("/wallets")
        async def list_wallets() -> List[Dict[str, Any]]:
            return [WalletView.from_wallet(w).model_dump(by_alias=True) for w in session.wallets]

        @self.app.post("/wallets", status_code=201)
        async def create_wallet() -> Dict[str, Any]:
            wallet = await session.create_wallet()
            return WalletView.from_wallet(wallet).model_dump(by_alias=True)

        @self.app.post("/wallets/import", status_code=201)
        async def import_wallet(request: ImportRequest) -> Dict[str, Any]:
            wallet = await session.import_wallet(request.private_key)
            return WalletView.from_wallet(wallet).model_dump(by_alias=True)

        @self.app.delete("/wallets/{address}")
        async def delete_wallet(address: str) -> Dict[str, Any]:
            if not session.delete_wallet(address):
                raise HTTPException(status_code=404, detail=f"Unknown wallet: {address}")
            return {"deleted": address}

        @self.app.get("/chain")
        async def chain() -> Optional[ChainSnapshot]:
            return session.chain

        @self.app.post("/chain/refresh")
        async def refresh_chain() -> ChainSnapshot:
            return await session.refresh_chain()

        @self.app.post("/chain/validate")
        async def validate_chain() -> Dict[str, bool]:
            return {"isValid": await session.validate_chain()}

        @self.app.get("/transactions/pending")
        async def pending_transactions() -> List[Transaction]:
            return list(session.pending_transactions)

        @self.app.post("/transactions", status_code=201)
        async def submit_transaction(request: TransactionRequest) -> Transaction:
            return await session.submit_transaction(
                request.from_address,
                request.to_address,
                request.amount,
                request.private_key,
            )

        @self.app.post("/mine", status_code=201)
        async def mine(request: MineRequest) -> Block:
            return await session.mine(request.miner_address)

        @self.app.get("/mining/history")
        async def mining_history() -> List[Block]:
            return list(session.mining_history)

        @self.app.get("/view")
        async def get_view() -> Dict[str, str]:
            return {"view": session.view}

        @self.app.put("/view")
        async def set_view(request: ViewRequest) -> Dict[str, str]:
            session.set_view(request.view)
            return {"view": session.view}

        @self.app.get("/notifications")
        async def notifications() -> Dict[str, Any]:
            session.notifications.expire()
            return {
                kind.value: _notification_dict(session.notifications.get(kind))
                for kind in NotificationKind
            }

        @self.app.delete("/notifications/{kind}")
        async def dismiss_notification(kind: NotificationKind) -> Dict[str, str]:
            session.notifications.dismiss(kind)
            return {"dismissed": kind.value}

    def get_app(self) -> FastAPI:
        """Get the FastAPI application."""
        return self.app
