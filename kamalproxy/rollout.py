"""Selection of requests for a rollout group by cookie."""

from __future__ import annotations

from dataclasses import dataclass, field

from kamalproxy.httpkit import Request

ROLLOUT_COOKIE_NAME = "kamal-rollout"

_MAX_HASH_VALUE = float(0xFFFFFFFF)
_FNV32_OFFSET = 0x811C9DC5
_FNV32_PRIME = 0x01000193


def _fnv1a_32(data: bytes) -> int:
    value = _FNV32_OFFSET
    for byte in data:
        value ^= byte
        value = (value * _FNV32_PRIME) & 0xFFFFFFFF
    return value


@dataclass
class RolloutController:
    """Routes a request to the rollout group by allowlist or hashed percentage."""

    percentage: int = 0
    allowlist: list[str] = field(default_factory=list)
    percentage_split_point: float = field(init=False)

    def __post_init__(self) -> None:
        self.allowlist = list(self.allowlist)
        self.percentage_split_point = _MAX_HASH_VALUE * (float(self.percentage) / 100.0)

    def request_uses_rollout_group(self, request: Request) -> bool:
        value = request.cookie(ROLLOUT_COOKIE_NAME)
        if not value:
            return False
        if value in self.allowlist:
            return True
        return float(_fnv1a_32(value.encode("utf-8"))) <= self.percentage_split_point