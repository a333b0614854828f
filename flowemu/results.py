"""Results of executing transactions and scripts."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Optional

from flowemu.model import AccountPublicKey, Address, Event, Identifier, TransactionBody


@dataclass
class TransactionResultDebug:
    """Details about an unsuccessful transaction execution."""

    message: str = ""
    meta: Optional[dict[str, Any]] = None


@dataclass
class TransactionResult:
    """The result of executing a transaction."""

    transaction_id: Identifier = field(default_factory=Identifier)
    computation_used: int = 0
    memory_estimate: int = 0
    error: Optional[BaseException] = None
    logs: list[str] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    debug: Optional[TransactionResultDebug] = None

    def succeeded(self) -> bool:
        return self.error is None

    def reverted(self) -> bool:
        return not self.succeeded()


@dataclass
class ScriptResult:
    """The result of executing a script."""

    script_id: Identifier = field(default_factory=Identifier)
    value: Any = None
    error: Optional[BaseException] = None
    logs: list[str] = field(default_factory=list)
    events: list[Event] = field(default_factory=list)
    computation_used: int = 0
    memory_estimate: int = 0

    def succeeded(self) -> bool:
        return self.error is None

    def reverted(self) -> bool:
        return not self.succeeded()


def new_transaction_invalid_hash_algo(
    key: AccountPublicKey, address: Address, invalid_algo: str
) -> TransactionResultDebug:
    """Describe a signature made with a hashing algorithm the key does not use."""
    return TransactionResultDebug(
        message=(
            f"invalid hashing algorithm signature: public key {key.index} on account "
            f"{address} does not have a valid signature: key requires {key.hash_algo} "
            f"hashing algorithm, but {invalid_algo} was used"
        ),
        meta=None,
    )


def new_transaction_invalid_signature(tx: TransactionBody) -> TransactionResultDebug:
    """Describe the signing parties of a transaction with an invalid signature."""
    authorizers = " ".join(str(a) for a in tx.authorizers)
    return TransactionResultDebug(
        message="",
        meta={
            "payer": str(tx.payer),
            "proposer": str(tx.proposal_key.address),
            "proposerKeyIndex": str(tx.proposal_key.key_index),
            "authorizers": f"[{authorizers}]",
            "gasLimit": str(tx.gas_limit),
        },
    )