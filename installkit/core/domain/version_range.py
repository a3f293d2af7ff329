"""
Domain — Version parsing and range matching (pure).

Product and unit versions are dotted strings (``"1.2.3"``,
``"2.0.0.v20240101"``). Ranges use interval notation::

    [1.0,2.0)    1.0 <= v < 2.0
    (1.0,2.0]    1.0 <  v <= 2.0
    1.5          v >= 1.5

No I/O.
"""

from __future__ import annotations

from dataclasses import dataclass


def parse_version(text: str) -> tuple[tuple[int, int, int], str]:
    """Split a version string into numeric components and a qualifier.

    Missing numeric parts default to zero; a leading ``v`` is ignored.
    Anything after the third dot is the qualifier, compared as text.

    Raises:
        ValueError: If a numeric component is not an integer.
    """
    parts = text.strip().lstrip("vV").split(".", 3)
    if parts == [""]:
        return (0, 0, 0), ""
    numbers = [int(p) for p in parts[:3]]
    while len(numbers) < 3:
        numbers.append(0)
    qualifier = parts[3] if len(parts) > 3 else ""
    return (numbers[0], numbers[1], numbers[2]), qualifier


def compare_versions(left: str, right: str) -> int:
    """Compare two version strings; returns -1, 0 or 1."""
    a = parse_version(left)
    b = parse_version(right)
    if a < b:
        return -1
    if a > b:
        return 1
    return 0


@dataclass(frozen=True)
class VersionRange:
    """An interval of versions with inclusive/exclusive bounds.

    ``maximum`` of ``None`` means unbounded above.
    """

    minimum: str = "0.0.0"
    maximum: str | None = None
    include_minimum: bool = True
    include_maximum: bool = False

    @classmethod
    def parse(cls, text: str) -> VersionRange:
        """Parse interval notation or a bare minimum version.

        Raises:
            ValueError: On malformed ranges.
        """
        text = text.strip()
        if not text:
            return cls()

        if text[0] not in "[(":
            parse_version(text)
            return cls(minimum=text)

        if text[-1] not in "])":
            raise ValueError(f"Unterminated version range: {text!r}")

        body = text[1:-1]
        if "," not in body:
            raise ValueError(f"Version range needs a minimum and maximum: {text!r}")
        low, high = (part.strip() for part in body.split(",", 1))
        parse_version(low)
        parse_version(high)
        return cls(
            minimum=low,
            maximum=high,
            include_minimum=text[0] == "[",
            include_maximum=text[-1] == "]",
        )

    def includes(self, version: str) -> bool:
        """Whether ``version`` falls inside the range."""
        try:
            low = compare_versions(version, self.minimum)
        except ValueError:
            return False
        if low < 0 or (low == 0 and not self.include_minimum):
            return False

        if self.maximum is None:
            return True

        high = compare_versions(version, self.maximum)
        if high > 0 or (high == 0 and not self.include_maximum):
            return False
        return True

    def __str__(self) -> str:
        if self.maximum is None:
            return self.minimum
        left = "[" if self.include_minimum else "("
        right = "]" if self.include_maximum else ")"
        return f"{left}{self.minimum},{self.maximum}{right}"
