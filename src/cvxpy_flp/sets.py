"""Set-based indexing for facility-location models.

Facilities and stores are ordered :class:`Set` objects. A
:class:`VariableIndex` lays the decision variables of the uncapacitated
facility-location model out over contiguous columns, and :class:`Variable`
is a ``cp.Variable`` that can be addressed by those symbolic keys.

Example
-------
>>> facilities = Set(['Atlanta', 'Denver'], name='facilities')
>>> stores = Set(['NYC', 'LA', 'Miami'], name='stores')
>>> index = VariableIndex(facilities, stores)
>>> len(index)
8
>>> index.position(('open', 'Denver'))
1
>>> index.label(index.assign('LA', 'Atlanta'))
'assign[LA,Atlanta]'
"""

from __future__ import annotations

from itertools import product as itertools_product
from typing import Hashable, Iterable, Iterator, Sequence

import numpy as np

import cvxpy as cp

OPEN = "open"
ASSIGN = "assign"


class Set:
    """An ordered set of elements (facility sites, stores, ...).

    Parameters
    ----------
    elements : Iterable[Hashable]
        The elements of the set. Order is preserved and defines positions.
    name : str, optional
        A name for this set (used in error messages).
    names : tuple[str, ...], optional
        Names for positions in compound (tuple) elements.

    Examples
    --------
    >>> sites = Set(['Atlanta', 'Boston', 'Chicago'], name='sites')
    >>> sites.position('Boston')
    1
    """

    def __init__(
        self,
        elements: Iterable[Hashable],
        name: str | None = None,
        names: Sequence[str] | None = None,
    ):
        self._elements = list(elements)
        self._name = name or f"Set_{id(self)}"
        self._pos = {e: i for i, e in enumerate(self._elements)}
        if len(self._pos) != len(self._elements):
            raise ValueError(f"Set '{self._name}' contains duplicate elements")
        self._names = tuple(names) if names else None

    @classmethod
    def range(cls, n: int, name: str | None = None) -> Set:
        """Create the set ``0, 1, ..., n - 1``."""
        return cls(range(n), name=name)

    def __len__(self) -> int:
        return len(self._elements)

    def __iter__(self):
        return iter(self._elements)

    def __contains__(self, elem: Hashable) -> bool:
        try:
            return elem in self._pos
        except TypeError:
            return False

    def __getitem__(self, pos: int) -> Hashable:
        return self._elements[pos]

    def __repr__(self) -> str:
        if len(self._elements) <= 5:
            elems = str(self._elements)
        else:
            elems = f"[{self._elements[0]!r}, ..., {self._elements[-1]!r}] ({len(self)} elements)"
        return f"Set({elems}, name={self._name!r})"

    @property
    def name(self) -> str:
        return self._name

    @property
    def names(self) -> tuple[str, ...] | None:
        """Position names for compound elements."""
        return self._names

    def position(self, elem: Hashable) -> int:
        """Return the integer position of an element.

        Raises
        ------
        KeyError
            If the element is not in the set.
        """
        if elem not in self:
            raise KeyError(f"Element {elem!r} not in set '{self._name}'")
        return self._pos[elem]

    @staticmethod
    def cross(
        *sets: Set,
        name: str | None = None,
        names: Sequence[str] | None = None,
    ) -> Set:
        """Create the cross-product of several sets, in row-major order.

        Examples
        --------
        >>> stores = Set(['NYC', 'LA'], name='stores')
        >>> sites = Set(['Atlanta', 'Denver'], name='sites')
        >>> list(Set.cross(stores, sites))
        [('NYC', 'Atlanta'), ('NYC', 'Denver'), ('LA', 'Atlanta'), ('LA', 'Denver')]
        """
        if len(sets) < 2:
            raise ValueError("cross() requires at least 2 sets")

        elements = list(itertools_product(*[s._elements for s in sets]))

        if names is None:
            names = tuple(s._name for s in sets)

        return Set(elements, name=name, names=names)


class VariableIndex:
    """Column layout of the facility-location decision variables.

    Columns ``0 .. M-1`` hold ``open[j]`` for each facility ``j`` in set
    order. Columns ``M .. M + N*M - 1`` hold ``assign[i, j]`` in row-major
    ``(store, facility)`` order, so ``assign[i, j]`` sits at
    ``M + pos(i) * M + pos(j)``.

    Keys are ``('open', j)`` and ``('assign', i, j)``.

    Parameters
    ----------
    facilities : Set
        Candidate facility sites (size M).
    stores : Set
        Demand points (size N). May be the same Set as ``facilities``.
    """

    def __init__(self, facilities: Set, stores: Set):
        self._facilities = facilities
        self._stores = stores
        self._n_open = len(facilities)
        self._size = self._n_open + len(stores) * self._n_open
        self._name = "columns"

    def __len__(self) -> int:
        return self._size

    def __iter__(self) -> Iterator[tuple]:
        for j in self._facilities:
            yield (OPEN, j)
        for i, j in itertools_product(self._stores, self._facilities):
            yield (ASSIGN, i, j)

    def __contains__(self, key) -> bool:
        if not isinstance(key, tuple) or not key or not isinstance(key[0], str):
            return False
        if key[0] == OPEN and len(key) == 2:
            return key[1] in self._facilities
        if key[0] == ASSIGN and len(key) == 3:
            return key[1] in self._stores and key[2] in self._facilities
        return False

    def __repr__(self) -> str:
        return (
            f"VariableIndex(facilities={self._facilities.name!r}, "
            f"stores={self._stores.name!r}, columns={self._size})"
        )

    @property
    def name(self) -> str:
        return self._name

    @property
    def facilities(self) -> Set:
        return self._facilities

    @property
    def stores(self) -> Set:
        return self._stores

    @property
    def n_facilities(self) -> int:
        return self._n_open

    @property
    def n_stores(self) -> int:
        return len(self._stores)

    @property
    def open_slice(self) -> slice:
        """Columns of the ``open`` block."""
        return slice(0, self._n_open)

    @property
    def assign_slice(self) -> slice:
        """Columns of the ``assign`` block."""
        return slice(self._n_open, self._size)

    def open(self, facility: Hashable) -> int:
        """Column of ``open[facility]``."""
        return self._facilities.position(facility)

    def assign(self, store: Hashable, facility: Hashable) -> int:
        """Column of ``assign[store, facility]``."""
        return (
            self._n_open
            + self._stores.position(store) * self._n_open
            + self._facilities.position(facility)
        )

    def position(self, key: tuple) -> int:
        """Return the column of a symbolic key.

        Raises
        ------
        KeyError
            If the key is malformed or names an unknown element.
        """
        if key not in self:
            raise KeyError(f"Key {key!r} not in index '{self._name}'")
        if key[0] == OPEN:
            return self.open(key[1])
        return self.assign(key[1], key[2])

    def key(self, col: int) -> tuple:
        """Inverse of :meth:`position`."""
        if not 0 <= col < self._size:
            raise KeyError(f"Column {col} out of range for index '{self._name}'")
        if col < self._n_open:
            return (OPEN, self._facilities[col])
        i, j = divmod(col - self._n_open, self._n_open)
        return (ASSIGN, self._stores[i], self._facilities[j])

    def label(self, col: int) -> str:
        """Readable name of a column, e.g. ``open[3]`` or ``assign[0,3]``."""
        kind, *elems = self.key(col)
        return f"{kind}[{','.join(str(e) for e in elems)}]"

    def assign_columns(self) -> np.ndarray:
        """Columns of ``assign`` as an (N, M) array."""
        cols = np.arange(self._n_open, self._size)
        return cols.reshape(len(self._stores), self._n_open)


class Variable(cp.Variable):
    """A CVXPY Variable laid out by a :class:`VariableIndex`.

    This class inherits from cp.Variable, so all CVXPY operations work
    natively.

    Examples
    --------
    >>> x = Variable(index, boolean=True, name='x')
    >>> x[('open', 'Denver')]                    # named access
    >>> x[index.open_slice]                      # standard CVXPY indexing
    """

    def __init__(
        self,
        index: VariableIndex,
        name: str | None = None,
        **kwargs,
    ):
        self._set_index = index
        super().__init__(len(index), name=name, **kwargs)

    @property
    def index(self) -> VariableIndex:
        """The index laying out this variable."""
        return self._set_index

    def __getitem__(self, key):
        if isinstance(key, tuple) and key in self._set_index:
            return super().__getitem__(self._set_index.position(key))
        return super().__getitem__(key)

    def get_value(self, key: tuple) -> float | None:
        """Solved value for a symbolic key, or None if not solved yet."""
        if self.value is None:
            return None
        return float(self.value[self._set_index.position(key)])

    def __repr__(self) -> str:
        return f"Variable(index={self._set_index!r}, shape={self.shape})"
