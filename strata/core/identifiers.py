"""Identifiers — entity ids and correlation ids for logs and envelopes.

Invariants:
    - Entity ids look like id_<ms-timestamp>_<9 base36 chars>
    - Correlation ids look like <prefix>-<ms-timestamp>-<9 base36 chars>
    - Unique enough within one process; NOT globally unique across processes

Design Decisions:
    - Time-prefixed ids sort roughly by creation time, which helps when reading logs
"""

import random
import string
import time

_BASE36 = string.digits + string.ascii_lowercase


def epoch_ms() -> int:
    return int(time.time() * 1000)


def random_suffix(length: int = 9) -> str:
    return "".join(random.choices(_BASE36, k=length))


def generate_entity_id() -> str:
    return f"id_{epoch_ms()}_{random_suffix()}"


def correlation_id(*parts: str) -> str:
    """Join parts with the timestamp and random suffix: a-b-<ms>-<rand>."""
    return "-".join([*parts, str(epoch_ms()), random_suffix()])
