"""
listing_table.py — Flatten a listing page's <th>/<td> rows into a keyword-queryable list.

SUUMO frequently merges several logical fields into one header cell
(e.g. "間取り詳細構造", "階建築年月"), so lookups match keywords as substrings of
the header rather than relying on a fixed schema.
"""

from __future__ import annotations

from dataclasses import dataclass

from bs4 import BeautifulSoup, NavigableString, Tag


@dataclass(frozen=True)
class TableEntry:
    header: str
    value: str


def element_text(el: Tag) -> str:
    """Element text with <br> rendered as a newline (keeps multi-line cells splittable)."""
    parts: list[str] = []
    for node in el.descendants:
        if isinstance(node, Tag):
            if node.name == "br":
                parts.append("\n")
        elif type(node) is NavigableString:  # skips comments / script bodies
            parts.append(str(node))
    return "".join(parts).strip()


class ListingTable:
    def __init__(self, entries: list[TableEntry]) -> None:
        self._entries: tuple[TableEntry, ...] = tuple(entries)

    @classmethod
    def from_soup(cls, soup: BeautifulSoup) -> "ListingTable":
        entries: list[TableEntry] = []
        for row in soup.select("table tr"):
            ths = row.find_all("th")
            tds = row.find_all("td")
            if len(ths) == 1 and len(tds) == 1:
                # Lone (often merged) pairs repeat across page sections; keep the first copy.
                entry = TableEntry(element_text(ths[0]), element_text(tds[0]))
                if entry.header and entry.value and entry not in entries:
                    entries.append(entry)
            elif len(ths) == len(tds):
                for th, td in zip(ths, tds):
                    header = element_text(th)
                    value = element_text(td)
                    if header and value:
                        entries.append(TableEntry(header, value))
        return cls(entries)

    @property
    def entries(self) -> tuple[TableEntry, ...]:
        return self._entries

    def __len__(self) -> int:
        return len(self._entries)

    def find_value(self, *keywords: str, exclude: tuple[str, ...] = ()) -> str:
        """
        Value of the first entry whose header contains a keyword (keywords in priority order).

        `exclude` skips merged headers that would otherwise shadow the intended field,
        e.g. "構造" inside "間取り詳細構造".
        """
        for kw in keywords:
            if not kw:
                continue
            for entry in self._entries:
                if kw not in entry.header:
                    continue
                if any(x in entry.header for x in exclude):
                    continue
                return entry.value
        return ""
