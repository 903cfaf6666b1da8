"""
Pending slot states: what the assistant is waiting for from a user.

Each class is one category of the session state store. A user can hold at
most one slot per category; different categories coexist.
"""

import time
from dataclasses import dataclass, field
from typing import Any, Literal, Optional, Union


def _now() -> float:
    return time.time()


@dataclass(frozen=True)
class AwaitingAddressConfirmation:
    """A vague address was given; waiting for YA or a better address."""
    address: str
    category: str
    description: str = ""
    rt_rw: str = ""
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AwaitingAddress:
    """A complaint category is known; waiting for its location."""
    category: str
    description: str = ""
    rt_rw: str = ""
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AwaitingCancelConfirmation:
    target_type: Literal["complaint", "service"]
    target_id: str
    reason: Optional[str] = None
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AwaitingName:
    """A name candidate waiting for YA/BUKAN."""
    name: str
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AwaitingServiceFormOffer:
    service_slug: str
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AwaitingComplaintContact:
    """Complaint is complete except for the reporter's name or phone."""
    data: dict[str, Any]
    waiting_for: Literal["name", "phone"]
    timestamp: float = field(default_factory=_now)


@dataclass(frozen=True)
class AccumulatedPhotos:
    urls: tuple[str, ...] = ()
    timestamp: float = field(default_factory=_now)


PendingSlotState = Union[
    AwaitingAddressConfirmation,
    AwaitingAddress,
    AwaitingCancelConfirmation,
    AwaitingName,
    AwaitingServiceFormOffer,
    AwaitingComplaintContact,
    AccumulatedPhotos,
]
