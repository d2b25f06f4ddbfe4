import json

import pytest

from dogewallet.addressbook import AddressBook, AddressBookError, AddressItem


@pytest.fixture
def book():
    result = AddressBook()
    result.add("alice", "addr-a")
    result.add("bob", "addr-b")
    result.add("carol", "addr-c")
    return result


def test_add_and_lookup(book):
    assert len(book) == 3
    assert book[1] == AddressItem("bob", "addr-b")
    assert book.find_by_label("carol") == 2
    assert book.find_by_address("addr-a") == 0
    assert book.find("bob", "addr-b") == 1
    assert book.find("bob", "addr-a") is None
    assert list(book) == [
        AddressItem("alice", "addr-a"),
        AddressItem("bob", "addr-b"),
        AddressItem("carol", "addr-c"),
    ]


def test_add_returns_index_and_emits():
    book = AddressBook()
    seen = []
    book.added.connect(seen.append)
    assert book.add("x", "y") == 0
    assert book.add("z", "w") == 1
    assert seen == [0, 1]


def test_duplicate_label_rejected(book):
    with pytest.raises(AddressBookError):
        book.add("bob", "addr-new")
    assert len(book) == 3


def test_duplicate_label_checked_trimmed(book):
    with pytest.raises(AddressBookError):
        book.add("  bob  ", "addr-new")


def test_duplicate_address_rejected(book):
    with pytest.raises(AddressBookError):
        book.add("dave", "addr-c")
    assert book.find_by_label("dave") is None


def test_edit_updates_indexes(book):
    seen = []
    book.edited.connect(seen.append)
    book.edit(1, "robert", "addr-r")
    assert book[1] == AddressItem("robert", "addr-r")
    assert book.find_by_label("bob") is None
    assert book.find_by_address("addr-b") is None
    assert book.find_by_label("robert") == 1
    assert book.find_by_address("addr-r") == 1
    assert seen == [1]


def test_remove_reindexes(book):
    events = []
    book.begin_remove.connect(lambda i: events.append(("begin", i, len(book))))
    book.end_remove.connect(lambda: events.append(("end", len(book))))
    book.remove(0)
    assert len(book) == 2
    assert book.find_by_label("alice") is None
    assert book.find_by_label("bob") == 0
    assert book.find_by_address("addr-c") == 1
    assert events == [("begin", 0, 3), ("end", 2)]


@pytest.mark.parametrize("index", [-1, 3, 10])
def test_index_out_of_range(book, index):
    with pytest.raises(IndexError):
        book[index]
    with pytest.raises(IndexError):
        book.edit(index, "a", "b")
    with pytest.raises(IndexError):
        book.remove(index)


def test_persistence_round_trip(tmp_path):
    path = tmp_path / "sub" / "address_book.json"
    book = AddressBook(path)
    book.add("alice", "addr-a")
    book.add("bob", "addr-b")
    book.remove(0)
    book.add("carol", "addr-c")

    reopened = AddressBook(path)
    assert list(reopened) == list(book)
    assert reopened.find_by_label("carol") == 1

    stored = json.loads(path.read_text(encoding="utf-8"))
    assert stored["addressBook"][0] == {"label": "bob", "address": "addr-b"}


def test_missing_and_malformed_files_are_empty(tmp_path):
    assert len(AddressBook(tmp_path / "absent.json")) == 0
    broken = tmp_path / "broken.json"
    broken.write_text("{not json", encoding="utf-8")
    assert len(AddressBook(broken)) == 0


def test_malformed_entries_read_as_empty_strings(tmp_path):
    path = tmp_path / "book.json"
    path.write_text(json.dumps({"addressBook": [{"label": "a"}, 5]}), encoding="utf-8")
    book = AddressBook(path)
    assert list(book) == [AddressItem("a", ""), AddressItem("", "")]