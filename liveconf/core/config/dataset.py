"""DataSet: one raw configuration payload plus its provenance."""

from __future__ import annotations

import hashlib
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Tuple, Union


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class DataSet:
    """Raw data read from a source.

    ``data`` is decoded later by the decoder registered for ``format``.
    ``checksum`` defaults to ``"md5:<hex>"`` of the data.
    """

    data: bytes
    format: str
    source: str
    checksum: str = ""
    timestamp: datetime = field(default_factory=_utcnow)
    args: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        data: Union[bytes, str] = self.data
        if isinstance(data, str):
            object.__setattr__(self, "data", data.encode("utf-8"))
        elif isinstance(data, bytearray):
            object.__setattr__(self, "data", bytes(data))
        object.__setattr__(self, "args", tuple(self.args))
        if not self.checksum:
            object.__setattr__(self, "checksum", f"md5:{self.md5()}")

    def __repr__(self) -> str:
        return (
            f"DataSet(source={self.source!r}, format={self.format!r}, "
            f"size={len(self.data)}, checksum={self.checksum!r})"
        )

    @property
    def is_empty(self) -> bool:
        return not self.data

    def md5(self) -> str:
        return hashlib.md5(self.data).hexdigest()

    def sha256(self) -> str:
        return hashlib.sha256(self.data).hexdigest()
