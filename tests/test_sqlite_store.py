import os

import pytest

from flowemu.errors import EmulatorError, EntityNotFoundError
from flowemu.model import (
    Address,
    Block,
    Collection,
    Event,
    ExecutionSnapshot,
    Header,
    Identifier,
    ProposalKey,
    RegisterID,
    StorableTransactionResult,
    TransactionBody,
)
from flowemu.sqlite_store import SqliteStore

ENCODINGS = ["ccf", "json-cdc"]


def transaction_fixture(seed: int = 1) -> TransactionBody:
    return TransactionBody(
        reference_block_id=Identifier(bytes([seed]) * 32),
        script=f'transaction {{ execute {{ log("Hello, World {seed}!") }} }}'.encode(),
        arguments=[b'{"type":"Int","value":"1"}'],
        gas_limit=42,
        proposal_key=ProposalKey(Address.from_hex("01"), 1, 42),
        payer=Address.from_hex("02"),
        authorizers=[Address.from_hex("03")],
    )


class EventGenerator:
    def __init__(self, encoding: str) -> None:
        self.encoding = encoding
        self.count = 0

    def new(self) -> Event:
        self.count += 1
        payload = (
            bytes([0xD8, 0x82, self.count])
            if self.encoding == "ccf"
            else f'{{"type":"Event","value":{self.count}}}'.encode()
        )
        return Event(
            type="A.0000000000000001.Foo.Bar",
            transaction_id=Identifier(bytes([self.count]) * 32),
            transaction_index=self.count,
            event_index=self.count,
            payload=payload,
        )


def result_fixture(encoding: str) -> StorableTransactionResult:
    events = EventGenerator(encoding)
    return StorableTransactionResult(
        error_code=42,
        error_message="foo",
        logs=["a", "b", "c"],
        events=[events.new(), events.new()],
    )


def full_collection_fixture(n: int) -> Collection:
    return Collection([transaction_fixture(i + 1) for i in range(n)])


@pytest.fixture
def store(tmp_path):
    path = tmp_path / "test.sqlite"
    path.touch()
    s = SqliteStore(str(path))
    yield s
    s.close()


def test_new_with_file(tmp_path):
    path = tmp_path / "test.sqlite"
    path.touch()
    s = SqliteStore(str(path))
    s.set_bytes("global", b"k", b"v")
    assert s.get_bytes("global", b"k") == b"v"
    s.close()


def test_new_invalid_location():
    with pytest.raises(FileNotFoundError) as info:
        SqliteStore("/invalidLocation")
    message = str(info.value)
    assert "unable to open database file: out of memory" not in message
    assert "no such file or directory" in message


def test_blocks(store):
    block1 = Block(header=Header(height=1))
    block2 = Block(header=Header(height=2))

    with pytest.raises(EntityNotFoundError):
        store.block_by_id(Identifier(bytes([9]) * 32))
    with pytest.raises(EntityNotFoundError):
        store.block_by_height(block1.header.height)
    with pytest.raises(EntityNotFoundError):
        store.latest_block()

    store.store_block(block1)
    store.store_block(block1)

    assert store.block_by_height(1) == block1
    assert store.block_by_id(block1.id()) == block1
    assert store.latest_block() == block1

    store.store_block(block2)
    assert store.latest_block() == block2


def test_collections(store):
    col = full_collection_fixture(3)
    with pytest.raises(EntityNotFoundError):
        store.collection_by_id(col.id())

    store.insert_collection(col.light())
    assert store.collection_by_id(col.id()) == col.light()


def test_transactions(store):
    tx = transaction_fixture()
    with pytest.raises(EntityNotFoundError):
        store.transaction_by_id(tx.id())

    store.insert_transaction(tx)
    assert store.transaction_by_id(tx.id()).id() == tx.id()


def test_full_collection(store):
    col = full_collection_fixture(3)
    with pytest.raises(EntityNotFoundError):
        store.collection_by_id(col.id())
    with pytest.raises(EntityNotFoundError):
        store.full_collection_by_id(col.id())

    store.insert_collection(col.light())
    for tx in col.transactions:
        store.insert_transaction(tx)

    assert store.full_collection_by_id(col.id()) == col


@pytest.mark.parametrize("encoding", ENCODINGS)
def test_transaction_results(store, encoding):
    result = result_fixture(encoding)

    with pytest.raises(EntityNotFoundError):
        store.transaction_result_by_id(Identifier(bytes([7]) * 32))

    tx_id = Identifier(bytes([8]) * 32)
    store.insert_transaction_result(tx_id, result)
    assert store.transaction_result_by_id(tx_id) == result


def test_ledger_get_set(store):
    owner = Address.from_hex("0x01")
    expected = b"bar"
    snapshot = ExecutionSnapshot({RegisterID(owner, "foo"): expected})

    store.insert_execution_snapshot(1, snapshot)

    ledger = store.ledger_by_height(1)
    assert ledger.get(RegisterID(owner, "foo")) == expected


def test_ledger_versioning(store):
    owner = Address.from_hex("0x01")
    total_blocks = 10
    snapshots = [
        ExecutionSnapshot(
            {RegisterID(owner, str(j)): bytes([i - 1]) for j in range(i - 1, i + 2)}
        )
        for i in range(2, total_blocks + 2)
    ]
    assert len(snapshots) == total_blocks

    for height, snapshot in enumerate(snapshots, start=1):
        store.insert_execution_snapshot(height, snapshot)

    ledger = store.ledger_by_height(1)
    for i in range(1, 4):
        assert ledger.get(RegisterID(owner, str(i))) == bytes([1])

    for block in range(2, total_blocks):
        ledger = store.ledger_by_height(block)
        for i in range(1, block):
            assert ledger.get(RegisterID(owner, str(i))) == bytes([i])
        for i in range(block, block + 3):
            assert ledger.get(RegisterID(owner, str(i))) == bytes([block])


def test_ledger_missing_register_is_none(store):
    ledger = store.ledger_by_height(5)
    assert ledger.get(RegisterID(Address.from_hex("01"), "missing")) is None


@pytest.mark.parametrize("encoding", ENCODINGS)
def test_insert_events(store, encoding):
    events = [EventGenerator(encoding).new()]
    store.insert_events(1, events)
    assert store.events_by_height(1, "") == events


@pytest.mark.parametrize("encoding", ENCODINGS)
def test_events_by_height(store, encoding):
    generator = EventGenerator(encoding)
    all_events, events_a, events_b = [], [], []
    for i in range(10):
        event = generator.new()
        event.transaction_index = i
        event.event_index = i * 2
        if i % 2 == 0:
            event.type = "A"
            events_a.append(event)
        else:
            event.type = "B"
            events_b.append(event)
        all_events.append(event)

    store.insert_events(1, all_events)
    store.insert_events(2, None)

    assert store.events_by_height(1, "") == all_events
    assert store.events_by_height(2, "") == []
    assert store.events_by_height(3, "") == []
    assert store.events_by_height(1, "A") == events_a
    assert store.events_by_height(1, "B") == events_b


def test_rollback_to_block_height(store):
    for height in range(1, 4):
        store.store_block(Block(header=Header(height=height)))
    assert store.latest_block_height() == 3

    store.rollback_to_block_height(1)

    assert store.latest_block_height() == 1
    assert store.block_by_height(1).header.height == 1
    with pytest.raises(EntityNotFoundError):
        store.block_by_height(2)


def test_rollback_requires_lower_height(store):
    store.store_block(Block(header=Header(height=2)))
    with pytest.raises(ValueError, match="rollback height should be less then current height"):
        store.rollback_to_block_height(2)


def test_in_memory_snapshots():
    with SqliteStore(":memory:") as s:
        assert s.supports_snapshots_with_current_config() is True
        s.store_block(Block(header=Header(height=0)))
        s.create_snapshot("created")
        s.store_block(Block(header=Header(height=1)))
        s.store_block(Block(header=Header(height=2)))
        assert s.latest_block().header.height == 2

        assert s.snapshots() == ["created"]
        s.load_snapshot("created")
        assert s.latest_block().header.height == 0

        with pytest.raises(EntityNotFoundError, match="snapshot missing does not exist"):
            s.load_snapshot("missing")


def test_directory_snapshots(tmp_path):
    with SqliteStore(str(tmp_path)) as s:
        assert (tmp_path / "emulator.sqlite").exists()
        assert s.supports_snapshots_with_current_config() is True
        s.store_block(Block(header=Header(height=0)))
        s.create_snapshot("first")
        assert (tmp_path / "snapshot_first").exists()
        s.store_block(Block(header=Header(height=1)))

        assert s.snapshots() == ["first"]
        s.load_snapshot("first")
        assert s.latest_block_height() == 0

        with pytest.raises(EntityNotFoundError):
            s.load_snapshot("missing")


def test_snapshots_unsupported_for_plain_file(store):
    assert store.supports_snapshots_with_current_config() is False
    with pytest.raises(EmulatorError, match="snapshot is not supported"):
        store.snapshots()
    with pytest.raises(EmulatorError, match="snapshot is not supported"):
        store.create_snapshot("x")


def test_versioned_values_pick_newest_not_above(store):
    store.set_bytes_with_version("ledger", b"k", b"one", 1)
    store.set_bytes_with_version("ledger", b"k", b"three", 3)
    assert store.get_bytes_at_version("ledger", b"k", 2) == b"one"
    assert store.get_bytes_at_version("ledger", b"k", 5) == b"three"
    with pytest.raises(EntityNotFoundError):
        store.get_bytes_at_version("ledger", b"k", 0)


def test_set_bytes_with_version_and_height_overwrites(store):
    store.set_bytes_with_version_and_height("ledger", b"k", b"a", 1, 4)
    store.set_bytes_with_version_and_height("ledger", b"k", b"b", 1, 4)
    assert store.get_bytes_at_version("ledger", b"k", 1) == b"b"
    rows = store.db.execute('SELECT height FROM "ledger"').fetchall()
    assert rows == [(4,)]


def test_directory_url_must_exist(tmp_path):
    missing = os.path.join(str(tmp_path), "nope")
    with pytest.raises(FileNotFoundError, match="unable to find database file"):
        SqliteStore(missing)