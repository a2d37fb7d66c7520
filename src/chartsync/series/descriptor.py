"""
chartsync.series.descriptor — Series descriptors and series sets.

A transform returns the series that should currently be shown:

    [
        {"id": "eur", "name": "EUR", "data": [[1700000000, 4.31], ...]},
        {"id": "usd", "name": "USD", "data": [[1700000000, 3.98], ...], "color": "#16a34a"},
    ]

Each entry becomes a SeriesDescriptor (id + data + render options).
SeriesSet.build() validates entries one by one: a malformed entry is
rejected with a ReconciliationError and the rest are kept, in input
order.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Mapping

from chartsync.errors import ReconciliationError


@dataclass
class SeriesDescriptor:
    """One series as the user wants it shown."""
    id: str
    data: list[Any] = field(default_factory=list)
    options: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_dict(cls, raw: Any, index: int | None = None) -> SeriesDescriptor:
        """Validate and convert one raw entry.

        Raises:
            ReconciliationError: Missing/invalid id or inconsistent data
        """
        where = f"series[{index}]" if index is not None else "series"

        if isinstance(raw, SeriesDescriptor):
            check_data_shape(raw.id, raw.data)
            return raw

        if not isinstance(raw, Mapping):
            raise ReconciliationError(
                f"{where} must be a mapping, got {type(raw).__name__}"
            )

        series_id = raw.get("id")
        if series_id is None or series_id == "":
            raise ReconciliationError(f"{where}.id is required")
        if not isinstance(series_id, str):
            raise ReconciliationError(
                f"{where}.id must be a string, got {type(series_id).__name__}"
            )

        data = raw.get("data", [])
        check_data_shape(series_id, data)

        return cls(
            id=series_id,
            data=list(data),
            options={k: v for k, v in raw.items() if k not in ("id", "data")},
        )

    def to_options(self) -> dict[str, Any]:
        """Flat option mapping handed to the chart library."""
        return {"id": self.id, "data": list(self.data), **self.options}


def check_data_shape(series_id: str, data: Any) -> None:
    """Check that non-null points share one shape.

    Accepted: all scalars, all mappings, or all sequences of one length.

    >>> check_data_shape("a", [1, None, 3])
    >>> check_data_shape("b", [[0, 1], [1, 2]])
    """
    if isinstance(data, (str, bytes)) or not isinstance(data, (list, tuple)):
        raise ReconciliationError(
            f"Series '{series_id}': data must be a list, got {type(data).__name__}",
            series_id=series_id,
        )

    kind: str | None = None
    width: int | None = None
    for i, point in enumerate(data):
        if point is None:
            continue
        if isinstance(point, Mapping):
            point_kind = "mapping"
        elif isinstance(point, (list, tuple)):
            point_kind = "sequence"
        else:
            point_kind = "scalar"

        if kind is None:
            kind = point_kind
        elif point_kind != kind:
            raise ReconciliationError(
                f"Series '{series_id}': point {i} is a {point_kind}, expected {kind}",
                series_id=series_id,
            )

        if point_kind == "sequence":
            if width is None:
                width = len(point)
            elif len(point) != width:
                raise ReconciliationError(
                    f"Series '{series_id}': point {i} has {len(point)} values, "
                    f"expected {width}",
                    series_id=series_id,
                )


class SeriesSet(Mapping[str, SeriesDescriptor]):
    """Ordered mapping id → SeriesDescriptor.

    Iteration follows the order the series were given in, which is
    the display order for newly added series. Never mutated after
    construction.

    Attributes:
        errors: Entries rejected while building this set
    """

    def __init__(
        self,
        descriptors: Iterable[SeriesDescriptor] = (),
        errors: Iterable[ReconciliationError] = (),
    ):
        self._items: dict[str, SeriesDescriptor] = {}
        for d in descriptors:
            if d.id in self._items:
                raise ReconciliationError(f"Duplicate series id '{d.id}'", series_id=d.id)
            self._items[d.id] = d
        self.errors: list[ReconciliationError] = list(errors)

    @classmethod
    def build(cls, raw: Any) -> SeriesSet:
        """Build a SeriesSet from a transform result.

        Accepts a SeriesSet, a sequence of mappings/descriptors, a
        mapping of id → options, or None (empty set).

        Raises:
            TypeError: raw is not a collection of series
        """
        if raw is None:
            return cls()
        if isinstance(raw, SeriesSet):
            return raw

        if isinstance(raw, Mapping):
            entries = [
                {**value, "id": key} if isinstance(value, Mapping) else value
                for key, value in raw.items()
            ]
        elif isinstance(raw, (str, bytes)) or not isinstance(raw, Iterable):
            raise TypeError(f"Cannot build a SeriesSet from {type(raw).__name__}")
        else:
            entries = list(raw)

        descriptors: list[SeriesDescriptor] = []
        errors: list[ReconciliationError] = []
        seen: set[str] = set()

        for i, entry in enumerate(entries):
            try:
                d = SeriesDescriptor.from_dict(entry, index=i)
            except ReconciliationError as e:
                errors.append(e)
                continue

            if d.id in seen:
                errors.append(ReconciliationError(
                    f"Duplicate series id '{d.id}' at series[{i}]; "
                    f"the first occurrence is kept",
                    series_id=d.id,
                ))
                continue
            seen.add(d.id)
            descriptors.append(d)

        return cls(descriptors, errors)

    @property
    def ids(self) -> tuple[str, ...]:
        return tuple(self._items)

    def __getitem__(self, series_id: str) -> SeriesDescriptor:
        return self._items[series_id]

    def __iter__(self) -> Iterator[str]:
        return iter(self._items)

    def __len__(self) -> int:
        return len(self._items)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, SeriesSet):
            return NotImplemented
        if self.ids != other.ids:
            return False
        return all(self._items[k] == other._items[k] for k in self._items)

    __hash__ = None  # type: ignore[assignment]

    def __repr__(self) -> str:
        errors = f" errors={len(self.errors)}" if self.errors else ""
        return f"<SeriesSet {list(self.ids)}{errors}>"
