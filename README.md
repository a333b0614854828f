# flowemu

Storage for a local blockchain emulator's chain state. It keeps finalized
blocks, collections, transactions, transaction results, events and a
versioned register ledger behind one interface, `flowemu.store.Store`, with
three back ends:

- `MemoryStore` (`flowemu.memstore`): everything in process memory,
  guarded by a lock so it can be shared between threads.
- `SqliteStore` (`flowemu.sqlite_store`): a SQLite database file, a
  directory (which then holds `emulator.sqlite` and snapshot files), or
  `":memory:"`. It also supports named snapshots and rollback.
- `RedisStore` (`flowemu.redis_store`): a Redis server, addressed by URL.
  Plain values are stored as hex strings; versioned values live in sorted
  sets scored by version.

`SqliteStore` and `RedisStore` share their logic through
`flowemu.store.DefaultStore`, which builds everything on four byte-level
accessors (`get_bytes`, `get_bytes_at_version`, `set_bytes`,
`set_bytes_with_version`) and names its keys with `DefaultKeyGenerator`.
Records are serialised as canonical CBOR by `flowemu.encoding`.

## Installation

```
pip install flowemu
```

For running the tests:

```
pip install "flowemu[test]"
pytest
```

## Quick start

```python
from flowemu.factory import create_default_storage
from flowemu.model import Block, Header

store = create_default_storage()          # SqliteStore(":memory:")

block = Block(header=Header(height=1))
store.store_block(block)

assert store.latest_block_height() == 1
assert store.block_by_id(block.id()) == block
```

`flowemu.factory` also offers `new_sqlite_storage(url)` and
`new_redis_storage(url)`.

Lookups that find nothing raise `flowemu.errors.EntityNotFoundError`
(a `LookupError`):

```python
from flowemu.errors import EntityNotFoundError

try:
    store.block_by_height(42)
except EntityNotFoundError:
    ...
```

`SqliteStore(path)` raises `FileNotFoundError` when `path` does not exist.

## The model

`flowemu.model` holds the stored entities as dataclasses: `Identifier`
(32 bytes) and `Address` (8 bytes), both with `from_hex` and `hex`;
`Header`, `Payload`, `CollectionGuarantee` and `Block`; `LightCollection`
(transaction IDs) and `Collection` (full `TransactionBody` objects, with
`light()`); `Event`; `StorableTransactionResult`; `RegisterID`;
`ExecutionSnapshot` (a write set of registers) and `SnapshotTree`, a layered
read-only view of registers. `genesis(chain_id)` returns a genesis block.
IDs are SHA3-256 digests of the entity's canonical CBOR form.

## Committing a block

`commit_block` stores a block together with everything it produced:

```python
store.commit_block(
    block,
    collections=[...],              # LightCollection objects
    transactions={...},             # Identifier -> TransactionBody
    transaction_results={...},      # Identifier -> StorableTransactionResult
    execution_snapshot=snapshot,    # ExecutionSnapshot of register writes
    events=[...],                   # Event objects
)
```

The number of transactions must equal the number of results; otherwise a
`ValueError` is raised. Any argument after the block may be `None`.

`events_by_height(height, event_type="")` returns a block's events, only
those of one type when `event_type` is given, and an empty list for a
height with no events.

## Reading the ledger

`ledger_by_height(height)` returns a read-only view of the registers as they
stood at that height (the newest write at or below it):

```python
from flowemu.model import Address, RegisterID

view = store.ledger_by_height(1)
value = view.get(RegisterID(Address.from_hex("01"), "foo"))
```

`get` returns `None` for a register that was never written.

## Snapshots and rollback (SQLite)

```python
from flowemu.sqlite_store import SqliteStore

with SqliteStore(":memory:") as store:
    store.create_snapshot("before-deploy")
    ...
    store.load_snapshot("before-deploy")
    print(store.snapshots())

    store.rollback_to_block_height(3)
```

Snapshots work for `":memory:"` databases and for stores opened on a
directory (`supports_snapshots_with_current_config()` tells which);
otherwise the snapshot methods raise `flowemu.errors.EmulatorError`.
Loading a snapshot that does not exist raises `EntityNotFoundError`.
`rollback_to_block_height` deletes everything stored above the given height
and raises `ValueError` unless that height is below the current one.

## Redis

```python
from flowemu.redis_store import RedisStore

store = RedisStore("redis://localhost:6379/0")
```

An already-built client may be passed as `RedisStore(url, client=...)`.

## Results and logging

`flowemu.results` defines `TransactionResult` and `ScriptResult` (each with
`succeeded()` and `reverted()`), `TransactionResultDebug`, and helpers
`new_transaction_invalid_hash_algo` and `new_transaction_invalid_signature`.
`flowemu.reporting.print_transaction_result` and `print_script_result` log a
short summary of a result to a standard `logging.Logger`, passing the
structured values in the record's `fields` attribute.

`flowemu.errors` holds the emulator's exception classes, all derived from
`EmulatorError`.

## What this package does not do

flowemu only stores chain state. It does not execute transactions or
scripts, produce blocks on its own, serve an access API, load ledger
checkpoints, fork state from a live network, or provide a command line.