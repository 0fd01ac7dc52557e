import sys
from collections import deque
from dataclasses import dataclass, field
from typing import Any, Iterable, Iterator, Optional, TextIO

from crust.types import to_display


class ValueStream:
    """Ordered values produced by a sequence of compounds.

    Null is never stored: pushing ``None`` does nothing.
    """
    def __init__(self, values: Iterable[Any] = ()):
        self.values = deque()
        self.extend(values)

    @classmethod
    def from_value(cls, value: Any) -> 'ValueStream':
        return cls([value])

    def push(self, value: Any):
        if value is not None:
            self.values.append(value)

    def extend(self, values: Iterable[Any]):
        for value in values:
            self.push(value)

    def unpack(self) -> Any:
        if not self.values:
            return None
        if len(self.values) == 1:
            return self.values[0]
        return list(self.values)

    def __iter__(self) -> Iterator[Any]:
        return iter(self.values)

    def __len__(self) -> int:
        return len(self.values)

    def __bool__(self) -> bool:
        return bool(self.values)

    def __repr__(self) -> str:
        return f"ValueStream({list(self.values)!r})"


@dataclass
class OutputStream:
    stream: ValueStream = field(default_factory=ValueStream)


class PrintStream(ValueStream):
    """Stream attached to the terminal: values are displayed, not stored."""
    def __init__(self, file: Optional[TextIO] = None):
        self.file = file
        super().__init__()

    def push(self, value: Any):
        if value is not None:
            print(to_display(value), file=self.file or sys.stdout, flush=True)
