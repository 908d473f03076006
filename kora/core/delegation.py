"""
Property delegation from the request context to its facades.

The context exposes a flat attribute surface (``ctx.body``, ``ctx.path``,
``ctx.set(...)``) that forwards to the request or response facade. The
forwarding table is declared once per class and installed as data
descriptors when the class is defined, so each attribute resolves to exactly
one facade member and no per-request work is done to set it up.
"""

from typing import Dict, Iterable, NamedTuple, Tuple

ACCESS = 'access'
GETTER = 'getter'
METHOD = 'method'


class Delegation(NamedTuple):
    """One row of a forwarding table."""
    target: str
    name: str
    kind: str


class Delegates:
    """Delegations from one owner attribute to the object it holds.

    Args:
        target: Attribute on the owner holding the facade ('request'/'response')
        access: Members forwarded for both reading and writing
        getters: Members forwarded for reading only
        methods: Methods forwarded as bound methods of the facade
    """

    def __init__(self,
                 target: str,
                 *,
                 access: Iterable[str] = (),
                 getters: Iterable[str] = (),
                 methods: Iterable[str] = ()):
        self.target = target
        self.rows: Tuple[Delegation, ...] = tuple(
            [Delegation(target, name, ACCESS) for name in access]
            + [Delegation(target, name, GETTER) for name in getters]
            + [Delegation(target, name, METHOD) for name in methods]
        )


def forwarding_table(*groups: Delegates) -> Dict[str, Delegation]:
    """Merge delegation groups into a single name -> Delegation table.

    Raises:
        ValueError: If a name is delegated more than once
    """
    table: Dict[str, Delegation] = {}
    for group in groups:
        for row in group.rows:
            if row.name in table:
                existing = table[row.name]
                raise ValueError(
                    f"'{row.name}' is already delegated to "
                    f"{existing.target}.{existing.name}"
                )
            table[row.name] = row
    return table


class DelegatedAttribute:
    """Data descriptor forwarding one attribute to a facade member."""

    __slots__ = ('target', 'name', 'kind')

    def __init__(self, delegation: Delegation):
        self.target = delegation.target
        self.name = delegation.name
        self.kind = delegation.kind

    def __get__(self, instance, owner=None):
        if instance is None:
            return self
        return getattr(getattr(instance, self.target), self.name)

    def __set__(self, instance, value) -> None:
        if self.kind != ACCESS:
            raise AttributeError(
                f"can't set attribute '{self.name}' "
                f"(read-only delegate of {self.target})"
            )
        setattr(getattr(instance, self.target), self.name, value)

    def __repr__(self) -> str:
        return f'<{self.kind} delegate {self.target}.{self.name}>'


def install(table: Dict[str, Delegation]):
    """Class decorator installing a forwarding table as descriptors.

    Raises:
        ValueError: If a delegated name would shadow an attribute the class
            defines itself
    """
    def decorator(cls):
        for name, delegation in table.items():
            if name in cls.__dict__:
                raise ValueError(
                    f"{cls.__name__}.{name} is defined on the class and "
                    f"cannot be delegated to {delegation.target}"
                )
            setattr(cls, name, DelegatedAttribute(delegation))
        cls.__delegates__ = dict(table)
        return cls

    return decorator
