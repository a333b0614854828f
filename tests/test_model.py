import pytest

from flowemu.model import (
    Address,
    Block,
    Collection,
    Event,
    ExecutionSnapshot,
    Header,
    Identifier,
    LightCollection,
    ProposalKey,
    RegisterID,
    SnapshotTree,
    StorableTransactionResult,
    TransactionBody,
    genesis,
)


def _identifier(n: int) -> Identifier:
    return Identifier(n.to_bytes(32, "big"))


def _transaction(n: int = 1) -> TransactionBody:
    return TransactionBody(
        reference_block_id=_identifier(n),
        script=f"transaction {{ execute {{ log({n}) }} }}".encode(),
        arguments=[b"arg"],
        gas_limit=42,
        proposal_key=ProposalKey(Address.from_hex("01"), 1, n),
        payer=Address.from_hex("02"),
        authorizers=[Address.from_hex("03")],
    )


def _full_collection(n: int) -> Collection:
    return Collection([_transaction(i) for i in range(n)])


def _storable_result() -> StorableTransactionResult:
    events = [Event(type="A.0000000000000001.Test.E", transaction_id=_identifier(i), event_index=i)
              for i in range(2)]
    return StorableTransactionResult(
        error_code=42, error_message="foo", logs=["a", "b", "c"], events=events
    )


def test_identifier_hex_round_trip():
    ident = _identifier(255)
    assert Identifier.from_hex(ident.hex()) == ident
    assert str(ident).endswith("ff")


def test_identifier_rejects_wrong_length():
    with pytest.raises(ValueError):
        Identifier(b"\x01\x02")
    with pytest.raises(ValueError):
        Identifier.from_hex("zz")


def test_address_from_hex_pads():
    assert Address.from_hex("0x01").hex() == "0000000000000001"
    assert str(Address.from_hex("0x01")) == "0000000000000001"


def test_address_too_long():
    with pytest.raises(ValueError):
        Address.from_hex("01" * 9)


def test_register_id_owner_and_str():
    assert RegisterID(Address(), "foo").owner == b""
    reg = RegisterID(Address.from_hex("01"), "foo")
    assert reg.owner == bytes(7) + b"\x01"
    assert str(reg) == "0000000000000001/666f6f"


def test_collection_light_and_id():
    col = _full_collection(3)
    light = col.light()
    assert light.transactions == [tx.id() for tx in col.transactions]
    assert col.id() == light.id()
    assert LightCollection(list(light.transactions)).id() == col.id()


def test_transaction_id_depends_on_content():
    assert _transaction(1).id() == _transaction(1).id()
    changed = _transaction(1)
    changed.script = b"other"
    assert changed.id() != _transaction(1).id()
    assert len(changed.id().value) == 32


def test_block_id_is_header_id():
    block = Block(header=Header(height=1234, parent_id=_identifier(7)))
    assert block.id() == block.header.id()
    other = Block(header=Header(height=1235, parent_id=_identifier(7)))
    assert other.id() != block.id()
    assert other.header.height == 1235


def test_genesis():
    block = genesis("flow-emulator")
    assert block.header.height == 0
    assert block.header.view == 0
    assert block.header.parent_id == Identifier()
    assert block.header.chain_id == "flow-emulator"
    assert block.payload.guarantees == []
    assert genesis("flow-emulator").id() == block.id()
    assert genesis("flow-testnet").id() != block.id()


def test_storable_result_fixture_defaults():
    result = _storable_result()
    assert result.block_height == 0
    assert result.block_id == Identifier()
    assert len(result.events) == 2


def test_snapshot_tree_layers():
    key = RegisterID(Address(), "foo")
    empty = SnapshotTree()
    assert empty.get(key) is None

    first = empty.append(ExecutionSnapshot({key: b"bar"}))
    assert first.get(key) == b"bar"
    assert empty.get(key) is None

    cleared = first.append(ExecutionSnapshot({key: None}))
    assert cleared.get(key) is None
    assert first.get(key) == b"bar"


def test_snapshot_tree_append_none_keeps_state():
    key = RegisterID(Address(), "foo")
    tree = SnapshotTree({key: b"v"})
    assert tree.append(None).get(key) == b"v"


def test_snapshot_tree_versioning_across_compaction():
    owner = Address.from_hex("01")
    trees = []
    tree = SnapshotTree()
    for i in range(2, 30):
        write_set = {RegisterID(owner, str(j)): bytes([i - 1]) for j in range(i - 1, i + 2)}
        tree = tree.append(ExecutionSnapshot(write_set))
        trees.append(tree)
    for block, view in enumerate(trees, start=1):
        for i in range(1, block):
            assert view.get(RegisterID(owner, str(i))) == bytes([i])
        for i in range(block, block + 3):
            assert view.get(RegisterID(owner, str(i))) == bytes([block])