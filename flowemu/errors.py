"""Errors raised by the emulator and its storage layer."""

from __future__ import annotations

from typing import Iterable, Optional


class EmulatorError(Exception):
    """Base class for all emulator errors."""


class EntityNotFoundError(EmulatorError, LookupError):
    """A stored entity could not be found."""

    def __init__(self, message: str = "could not find entity") -> None:
        super().__init__(message)


class InvalidArgumentError(EmulatorError):
    def __init__(self, msg: str) -> None:
        self.msg = msg
        super().__init__(f"Invalid argument error: {msg}")


class InternalError(EmulatorError):
    def __init__(self, msg: str) -> None:
        self.msg = msg
        super().__init__(f"Internal error: {msg}")


class NotFoundError(EmulatorError):
    """An entity could not be found."""


class BlockNotFoundError(NotFoundError):
    """A block could not be found."""


class BlockNotFoundByHeightError(BlockNotFoundError):
    def __init__(self, height: int) -> None:
        self.height = height
        super().__init__(f"could not find block at height {height}")


class BlockNotFoundByIDError(BlockNotFoundError):
    def __init__(self, block_id: object) -> None:
        self.id = block_id
        super().__init__(f"could not find block with ID {block_id}")


class CollectionNotFoundError(NotFoundError):
    def __init__(self, collection_id: object) -> None:
        self.id = collection_id
        super().__init__(f"could not find collection with ID {collection_id}")


class TransactionNotFoundError(NotFoundError):
    def __init__(self, tx_id: object) -> None:
        self.id = tx_id
        super().__init__(f"could not find transaction with ID {tx_id}")


class AccountNotFoundError(NotFoundError):
    def __init__(self, address: object) -> None:
        self.address = address
        super().__init__(f"could not find account with address {address}")


class TransactionValidationError(EmulatorError):
    """A submitted transaction is invalid."""


class DuplicateTransactionError(TransactionValidationError):
    def __init__(self, tx_id: object) -> None:
        self.tx_id = tx_id
        super().__init__(f"transaction with ID {tx_id} has already been submitted")


class IncompleteTransactionError(TransactionValidationError):
    def __init__(self, missing_fields: Iterable[str]) -> None:
        self.missing_fields = list(missing_fields)
        listed = " ".join(self.missing_fields)
        super().__init__(f"transaction is missing required fields: [{listed}]")


class ExpiredTransactionError(TransactionValidationError):
    def __init__(self, ref_height: int, final_height: int) -> None:
        self.ref_height = ref_height
        self.final_height = final_height
        super().__init__(
            f"transaction is expired: ref_height={ref_height} final_height={final_height}"
        )


class InvalidTransactionScriptError(TransactionValidationError):
    def __init__(self, parser_err: Optional[BaseException]) -> None:
        self.parser_err = parser_err
        super().__init__(f"failed to parse transaction Cadence script: {parser_err}")
        self.__cause__ = parser_err


class InvalidTransactionGasLimitError(TransactionValidationError):
    def __init__(self, maximum: int, actual: int) -> None:
        self.maximum = maximum
        self.actual = actual
        super().__init__(
            f"transaction gas limit ({actual}) exceeds the maximum gas limit ({maximum})"
        )


class InvalidStateVersionError(EmulatorError):
    def __init__(self, version: bytes) -> None:
        self.version = bytes(version)
        super().__init__(f"execution state with version hash {self.version.hex()} is invalid")


class PendingBlockCommitBeforeExecutionError(EmulatorError):
    def __init__(self, block_id: object) -> None:
        self.block_id = block_id
        super().__init__(f"pending block with ID {block_id} cannot be committed before execution")


class PendingBlockMidExecutionError(EmulatorError):
    def __init__(self, block_id: object) -> None:
        self.block_id = block_id
        super().__init__(f"pending block with ID {block_id} is currently being executed")


class PendingBlockTransactionsExhaustedError(EmulatorError):
    def __init__(self, block_id: object) -> None:
        self.block_id = block_id
        super().__init__(
            f"pending block with ID {block_id} contains no more transactions to execute"
        )


class StorageError(EmulatorError):
    def __init__(self, inner: BaseException) -> None:
        self.inner = inner
        super().__init__(f"storage failure: {inner}")
        self.__cause__ = inner


class ExecutionError(EmulatorError):
    def __init__(self, code: int, message: str) -> None:
        self.code = code
        self.message = message
        super().__init__(f"execution error code {code}: {message}")


class FVMError(EmulatorError):
    def __init__(self, flow_error: BaseException) -> None:
        self.flow_error = flow_error
        super().__init__(str(flow_error))
        self.__cause__ = flow_error