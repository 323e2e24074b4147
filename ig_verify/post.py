from __future__ import annotations

from dataclasses import asdict, dataclass
from typing import Any


@dataclass(frozen=True)
class PostData:
    """The attested post content, flattened from one or more proofs."""

    username: str | None = None
    caption: str | None = None
    image: str | None = None
    video: str | None = None

    likes: int = 0
    comments: int = 0

    media_code: str | None = None

    def display_name(self, fallback: str | None = None) -> str | None:
        return self.username or fallback

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)
