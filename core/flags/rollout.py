from __future__ import annotations


def hash_string(value: str) -> int:
    """
    32-bit signed polynomial hash, base 31, over UTF-16 code units.
    Pure function of the input; no seed.
    """
    h = 0
    data = value.encode("utf-16-le", "surrogatepass")
    for i in range(0, len(data), 2):
        unit = data[i] | (data[i + 1] << 8)
        h = (h * 31 + unit) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return h


def bucket_for(user_id: str | None) -> int:
    # anonymous callers share the empty-string bucket
    return abs(hash_string(user_id or "")) % 100


def is_in_rollout(user_id: str | None, percentage: int) -> bool:
    if percentage >= 100:
        return True
    if percentage <= 0:
        return False
    return bucket_for(user_id) < percentage
