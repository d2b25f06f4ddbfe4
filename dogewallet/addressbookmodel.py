"""Table views of an address book: rows, columns and roles, plus a sorted view."""

from __future__ import annotations

from enum import IntEnum, IntFlag
from typing import Any, List, Optional

from dogewallet.addressbook import AddressBook
from dogewallet.events import Signal


class Column(IntEnum):
    LABEL = 0
    ADDRESS = 1
    ACTION = 2


class Role(IntEnum):
    DISPLAY = 0
    DECORATION = 1
    TEXT_ALIGNMENT = 7
    LABEL = 0x100
    ADDRESS = 0x101
    COLUMN = 0x102
    ROW = 0x103


class Alignment(IntFlag):
    LEFT = 0x1
    RIGHT = 0x2
    VCENTER = 0x80


class ItemFlag(IntFlag):
    SELECTABLE = 0x1
    ENABLED = 0x20
    NEVER_HAS_CHILDREN = 0x80


_HEADERS = {Column.LABEL: "Label", Column.ADDRESS: "Address"}
_ALIGNMENTS = {
    Column.LABEL: Alignment.LEFT | Alignment.VCENTER,
    Column.ADDRESS: Alignment.RIGHT | Alignment.VCENTER,
}


class AddressBookModel:
    """Presents an AddressBook as a table and follows its changes.

    Signals: ``rows_inserted(first, last)``,
    ``rows_about_to_be_removed(first, last)``, ``rows_removed(first, last)``
    and ``data_changed(row)``.
    """

    def __init__(self, book: AddressBook) -> None:
        self._book = book
        self._row_count = 0
        self._pending_removal: Optional[int] = None
        self.rows_inserted = Signal()
        self.rows_about_to_be_removed = Signal()
        self.rows_removed = Signal()
        self.data_changed = Signal()

        book.added.connect(self._address_added)
        book.edited.connect(self._address_edited)
        book.begin_remove.connect(self._begin_remove)
        book.end_remove.connect(self._end_remove)
        self._book_opened()

    @property
    def book(self) -> AddressBook:
        return self._book

    def row_count(self) -> int:
        return self._row_count

    def column_count(self) -> int:
        return len(Column)

    def flags(self, row: int, column: int) -> ItemFlag:
        return ItemFlag.ENABLED | ItemFlag.NEVER_HAS_CHILDREN | ItemFlag.SELECTABLE

    def header_data(self, section: int, role: int = Role.DISPLAY) -> Any:
        if role == Role.DISPLAY:
            return _HEADERS.get(section)
        if role == Role.TEXT_ALIGNMENT:
            return _ALIGNMENTS.get(section)
        if role == Role.COLUMN:
            return section
        return None

    def data(self, row: int, column: int, role: int = Role.DISPLAY) -> Any:
        if not (0 <= row < self._row_count and 0 <= column < self.column_count()):
            return None
        if role == Role.DISPLAY:
            if column == Column.LABEL:
                return self.data(row, column, Role.LABEL)
            if column == Column.ADDRESS:
                return self.data(row, column, Role.ADDRESS)
            return None
        if role == Role.DECORATION:
            return None
        if role == Role.TEXT_ALIGNMENT:
            return self.header_data(column, role)
        item = self._book[row]
        if role == Role.LABEL:
            return item.label
        if role == Role.ADDRESS:
            return item.address
        if role == Role.COLUMN:
            return self.header_data(column, role)
        if role == Role.ROW:
            return row
        return None

    def _book_opened(self) -> None:
        count = len(self._book)
        if count > 0:
            self._row_count = count
            self.rows_inserted.emit(0, count - 1)

    def close(self) -> None:
        """Stop following the book and drop every row."""
        self._book.added.disconnect(self._address_added)
        self._book.edited.disconnect(self._address_edited)
        self._book.begin_remove.disconnect(self._begin_remove)
        self._book.end_remove.disconnect(self._end_remove)
        if self._row_count > 0:
            last = self._row_count - 1
            self.rows_about_to_be_removed.emit(0, last)
            self._row_count = 0
            self.rows_removed.emit(0, last)

    def _address_added(self, index: int) -> None:
        new_count = len(self._book)
        if self._row_count < new_count:
            first = self._row_count
            self._row_count = new_count
            self.rows_inserted.emit(first, new_count - 1)

    def _address_edited(self, index: int) -> None:
        self.data_changed.emit(index)

    def _begin_remove(self, index: int) -> None:
        self._pending_removal = index
        self.rows_about_to_be_removed.emit(index, index)

    def _end_remove(self) -> None:
        index = self._pending_removal
        self._pending_removal = None
        self._row_count = len(self._book)
        if index is not None:
            self.rows_removed.emit(index, index)


class SortedAddressBookModel:
    """A view of an AddressBookModel ordered by label, ignoring case.

    Entries with equal labels keep their order in the book.
    """

    def __init__(self, source: AddressBookModel) -> None:
        self._source = source

    @property
    def source(self) -> AddressBookModel:
        return self._source

    def _order(self) -> List[int]:
        rows = range(self._source.row_count())
        return sorted(rows, key=lambda row: (self._source.data(row, Column.LABEL, Role.LABEL) or "").casefold())

    def row_count(self) -> int:
        return self._source.row_count()

    def column_count(self) -> int:
        return self._source.column_count()

    def source_row(self, row: int) -> int:
        """The source model row shown at ``row`` of this view."""
        order = self._order()
        if not 0 <= row < len(order):
            raise IndexError(f"row {row} out of range")
        return order[row]

    def header_data(self, section: int, role: int = Role.DISPLAY) -> Any:
        return self._source.header_data(section, role)

    def data(self, row: int, column: int, role: int = Role.DISPLAY) -> Any:
        order = self._order()
        if not 0 <= row < len(order):
            return None
        return self._source.data(order[row], column, role)