from dataclasses import dataclass
from typing import Any, Optional


@dataclass
class BuiltinFunction:
    name: str
    arity: Optional[int]  # None means variadic
    fn: Any  # fn(interp, args, stdin) -> OutputStream | Exit
    scoped: bool = False  # fn also receives the calling frame

    def __repr__(self) -> str:
        return f"<builtin {self.name}>"
