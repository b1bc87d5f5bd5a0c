# core/identity_view.py
"""What the core writes into the UI. The core never reads from it."""

from enum import Enum
from typing import Optional, Protocol

from core.identity_cache import Slot

LOADING_TEXT = "Loading..."
EMPTY_TEXT = "—"  # Em dash (U+2014)


class DisplayState(str, Enum):
    EMPTY = ""
    LOADING = "loading"
    SUCCESS = "success"
    ERROR = "error"


def format_identity(address: Optional[str], country: Optional[str]) -> Optional[str]:
    """'1.2.3.4 (Germany)' or just the address when the country is unknown"""
    if not address or address in (EMPTY_TEXT, LOADING_TEXT):
        return address
    if country:
        return f"{address} ({country})"
    return address


def displayed_address(text: Optional[str]) -> str:
    """Address part of a displayed identity, without the country annotation"""
    return (text or "").split(" ", 1)[0]


class IdentityView(Protocol):
    def show_identity(self, slot: Slot, text: str, state: DisplayState) -> None:
        ...

    def show_status(self, message: str, kind: str = "info") -> None:
        ...

    def show_toggle_state(self, state) -> None:
        ...

    def show_proxy_endpoint(self, host: str, port: int) -> None:
        ...
