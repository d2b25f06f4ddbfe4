"""A persistent address book of labelled wallet addresses."""

from __future__ import annotations

import json
import os
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional, Union

from dogewallet.events import Signal

ADDRESS_BOOK_FILE_NAME = "address_book.json"

_BOOK_KEY = "addressBook"
_LABEL_KEY = "label"
_ADDRESS_KEY = "address"


@dataclass(frozen=True)
class AddressItem:
    """One entry of the address book."""

    label: str
    address: str


class AddressBookError(ValueError):
    """Raised when an entry would duplicate an existing label or address."""


def _text(value: Any) -> str:
    return value if isinstance(value, str) else ""


class AddressBook:
    """An ordered list of labelled addresses, saved as JSON after each change.

    With ``path`` set to None the book lives in memory only.

    Signals: ``added(index)``, ``edited(index)``, ``begin_remove(index)``
    and ``end_remove()``.
    """

    def __init__(self, path: Optional[Union[str, os.PathLike]] = None) -> None:
        self._path = Path(path) if path is not None else None
        self._document: Dict[str, Any] = self._load_document()
        self._entries: List[AddressItem] = self._parse_entries(self._document.get(_BOOK_KEY))
        self._address_index: Dict[str, int] = {}
        self._label_index: Dict[str, int] = {}
        self._build_indexes()

        self.added = Signal()
        self.edited = Signal()
        self.begin_remove = Signal()
        self.end_remove = Signal()

    @property
    def path(self) -> Optional[Path]:
        return self._path

    def _load_document(self) -> Dict[str, Any]:
        if self._path is None or not self._path.exists():
            return {}
        try:
            document = json.loads(self._path.read_text(encoding="utf-8"))
        except (OSError, ValueError):
            return {}
        return document if isinstance(document, dict) else {}

    @staticmethod
    def _parse_entries(raw: Any) -> List[AddressItem]:
        if not isinstance(raw, list):
            return []
        entries = []
        for entry in raw:
            mapping = entry if isinstance(entry, dict) else {}
            entries.append(AddressItem(_text(mapping.get(_LABEL_KEY)), _text(mapping.get(_ADDRESS_KEY))))
        return entries

    def _build_indexes(self) -> None:
        self._address_index.clear()
        self._label_index.clear()
        for index, item in enumerate(self._entries):
            self._address_index[item.address] = index
            self._label_index[item.label] = index

    def _save(self) -> None:
        if self._path is None:
            return
        self._document[_BOOK_KEY] = [
            {_LABEL_KEY: item.label, _ADDRESS_KEY: item.address} for item in self._entries
        ]
        self._path.parent.mkdir(parents=True, exist_ok=True)
        fd, temp_name = tempfile.mkstemp(prefix=".address_book.", dir=self._path.parent)
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                json.dump(self._document, handle, ensure_ascii=False, indent=2)
            os.replace(temp_name, self._path)
        except BaseException:
            if os.path.exists(temp_name):
                os.unlink(temp_name)
            raise

    def _check_index(self, index: int) -> None:
        if not 0 <= index < len(self._entries):
            raise IndexError(f"address index {index} out of range")

    def __len__(self) -> int:
        return len(self._entries)

    def __getitem__(self, index: int) -> AddressItem:
        self._check_index(index)
        return self._entries[index]

    def __iter__(self) -> Iterator[AddressItem]:
        return iter(list(self._entries))

    def find_by_address(self, address: str) -> Optional[int]:
        """Index of the entry holding ``address``, or None."""
        return self._address_index.get(address)

    def find_by_label(self, label: str) -> Optional[int]:
        """Index of the entry labelled ``label``, or None."""
        return self._label_index.get(label)

    def find(self, label: str, address: str) -> Optional[int]:
        """Index of the first entry with both ``label`` and ``address``, or None."""
        target = AddressItem(label, address)
        return next((i for i, item in enumerate(self._entries) if item == target), None)

    def add(self, label: str, address: str) -> int:
        """Append an entry and return its index.

        Raises AddressBookError if the label or the address is already used.
        """
        if self.find_by_label(label.strip()) is not None:
            raise AddressBookError(f'Label already exists: label="{label}"')
        if self.find_by_address(address.strip()) is not None:
            raise AddressBookError(f'Address already exists: address="{address}"')
        self._entries.append(AddressItem(label, address))
        self._save()
        index = len(self._entries) - 1
        self._address_index[address] = index
        self._label_index[label] = index
        self.added.emit(index)
        return index

    def edit(self, index: int, label: str, address: str) -> None:
        """Replace the label and address of the entry at ``index``."""
        self._check_index(index)
        old = self._entries[index]
        self._entries[index] = AddressItem(label, address)
        self._save()
        self._address_index.pop(old.address, None)
        self._label_index.pop(old.label, None)
        self._address_index[address] = index
        self._label_index[label] = index
        self.edited.emit(index)

    def remove(self, index: int) -> None:
        """Delete the entry at ``index``; later entries move up by one."""
        self._check_index(index)
        old = self._entries[index]
        self.begin_remove.emit(index)
        del self._entries[index]
        self._address_index.pop(old.address, None)
        self._label_index.pop(old.label, None)
        for position in range(index, len(self._entries)):
            item = self._entries[position]
            self._address_index[item.address] = position
            self._label_index[item.label] = position
        self._save()
        self.end_remove.emit()

    def __repr__(self) -> str:
        return f"AddressBook(path={self._path!r}, entries={len(self._entries)})"