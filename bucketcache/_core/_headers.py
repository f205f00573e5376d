from __future__ import annotations

from typing import Any, Iterable, Iterator, List, Mapping, MutableMapping, Optional, Tuple, Union


class Headers(MutableMapping[str, str]):
    """
    Case-insensitive, multi-value header mapping.

    Keys are stored lowercased. Reading a key joins repeated values with ``", "``,
    assigning a key appends another value.
    """

    def __init__(self, headers: Optional[Mapping[str, Union[str, List[str]]]] = None) -> None:
        self._headers = {k.lower(): ([v] if isinstance(v, str) else v[:]) for k, v in (headers or {}).items()}

    @classmethod
    def from_pairs(cls, pairs: Iterable[Tuple[str, str]]) -> "Headers":
        headers = cls()
        for key, value in pairs:
            headers[key] = value
        return headers

    def get_list(self, key: str) -> Optional[List[str]]:
        return self._headers.get(key.lower(), None)

    def pairs(self) -> List[Tuple[str, str]]:
        return [(key, value) for key, values in self._headers.items() for value in values]

    def __getitem__(self, key: str) -> str:
        return ", ".join(self._headers[key.lower()])

    def __setitem__(self, key: str, value: str) -> None:
        self._headers.setdefault(key.lower(), []).append(value)

    def __delitem__(self, key: str) -> None:
        del self._headers[key.lower()]

    def __iter__(self) -> Iterator[str]:
        return iter(self._headers)

    def __len__(self) -> int:
        return len(self._headers)

    def __repr__(self) -> str:
        return repr(self._headers)

    def __str__(self) -> str:
        return str(self._headers)

    def __eq__(self, other_headers: Any) -> bool:
        return isinstance(other_headers, Headers) and self._headers == other_headers._headers  # type: ignore
