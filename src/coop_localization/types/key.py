"""
Key types for graph vertices.
"""
from attrs import define, field, validators
from ..utils.validation import _check_valid_key


@define
class Key:
    """
    A handle uniquely identifying a vertex in the graph back-end.
    Keys are strings starting with a capital letter followed by numbers (e.g., "X0", "X12").
    """
    key: str = field(
        validator=validators.and_(
            validators.instance_of(str),
            _check_valid_key,
        ),
        metadata={"description": "The unique key identifier."},
    )

    def __hash__(self) -> int:
        return hash(self.key)

    def __str__(self) -> str:
        return self.key

    def __repr__(self) -> str:
        return f"Key({self.key})"

    @classmethod
    def from_parts(cls, char: str, index: int) -> "Key":
        return cls(f"{char}{index}")

    @property
    def char(self) -> str:
        """Returns the character prefix of the key."""
        return self.key[0]

    @property
    def index(self) -> int:
        """Returns the numeric index of the key."""
        return int(self.key[1:])


@define
class KeyPair:
    """
    A pair of keys, typically the two endpoints of an edge.
    """

    key1: Key = field(metadata={"description": "The first key"}, validator=validators.instance_of(Key))
    key2: Key = field(metadata={"description": "The second key"}, validator=validators.instance_of(Key))

    def __str__(self) -> str:
        return f"KeyPair({self.key1}, {self.key2})"
