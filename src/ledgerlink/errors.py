"""Error taxonomy shared by the gateway, registry, persistence and session."""


class LedgerClientError(Exception):
    """Base class for all ledgerlink errors."""


class TransportFailure(LedgerClientError):
    """The remote service could not be reached (network error or timeout)."""


class RemoteRejection(LedgerClientError):
    """The remote service answered but reported a failure."""


class PersistenceCorruption(LedgerClientError):
    """A stored record could not be parsed and was discarded."""

    def __init__(self, key: str, reason: str) -> None:
        super().__init__(f"Stored record '{key}' is corrupted: {reason}")
        self.key = key
        self.reason = reason


class DuplicateWallet(LedgerClientError):
    """A wallet with the same address is already held."""

    def __init__(self, address: str) -> None:
        super().__init__(f"Wallet {address} has already been imported")
        self.address = address


class InvalidInput(LedgerClientError):
    """User input rejected before any remote call was made."""


class SessionClosed(LedgerClientError):
    """A user action ran against a session that is closed or closing."""
