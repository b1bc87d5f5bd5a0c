# ui/identity_bridge.py
from PySide6.QtCore import QObject, Signal

from core.identity_cache import Slot
from core.identity_view import DisplayState


class QtIdentityView(QObject):
    """
    UI projection used by the core.

    The core calls these methods on its own event loop thread; Qt queues the
    signals to the GUI thread, where MainWindow and TrayIcon are connected.
    """

    identity_changed = Signal(str, str, str)  # slot, text, state
    status_changed = Signal(str, str)  # message, kind
    toggle_state_changed = Signal(str)  # ToggleState value
    proxy_endpoint_changed = Signal(str, int)  # host, port

    def show_identity(self, slot: Slot, text: str, state: DisplayState):
        self.identity_changed.emit(slot.value, text, state.value)

    def show_status(self, message: str, kind: str = "info"):
        self.status_changed.emit(message, kind)

    def show_toggle_state(self, state):
        self.toggle_state_changed.emit(state.value)

    def show_proxy_endpoint(self, host: str, port: int):
        self.proxy_endpoint_changed.emit(host, int(port))
