from typing import Optional


class ForgedWithdrawalError(Exception):
    """Base Exception for forged withdrawal generation."""

    def __init__(self, message: str, original_error: Optional[Exception] = None):
        super().__init__(message)
        self.original_error = original_error


class ConfigurationError(ForgedWithdrawalError):
    """Raised when a required endpoint or address is missing or invalid"""

    pass


class RemoteCallError(ForgedWithdrawalError):
    """Raised when an RPC call to the L1 or L2 node fails"""

    pass


class ProofResponseError(RemoteCallError):
    """Raised when an RPC response (event, proof, block or output) has an unexpected shape"""

    pass


class NoReusableProofError(ForgedWithdrawalError):
    """Raised when none of the scanned withdrawals has a leaf-terminated, extension-free proof."""

    def __init__(self, message: str, rejections=()):
        super().__init__(message)
        self.rejections = tuple(rejections)


class WithdrawalHashMismatchError(ForgedWithdrawalError):
    """Raised when the recomputed withdrawal hash differs from the one emitted in `MessagePassed`"""

    pass


class SearchExhaustedError(ForgedWithdrawalError):
    """Raised when no forged withdrawal matches the trie key prefix within the attempt ceiling."""

    def __init__(self, message: str, prefix: str, start: int, stop: int):
        super().__init__(message)
        self.prefix = prefix
        self.start = start
        self.stop = stop


class ForgedKeyMismatchError(ForgedWithdrawalError):
    """Raised when the forged withdrawal's trie key doesn't share the required prefix"""

    pass
