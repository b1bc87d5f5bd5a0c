# ui/main_window.py

from PySide6.QtWidgets import (
    QWidget, QVBoxLayout, QHBoxLayout, QPushButton,
    QLabel, QLineEdit, QGroupBox, QFormLayout, QMessageBox
)
from PySide6.QtCore import Qt
import logging

from core.identity_cache import Slot
from core.identity_view import EMPTY_TEXT
from core.toggle_machine import ToggleState
from utils.port_utils import validate_host_input, validate_port_input

logger = logging.getLogger(__name__)


def _repolish(widget):
    """Применяет изменившиеся dynamic properties к стилям"""
    widget.style().unpolish(widget)
    widget.style().polish(widget)


class MainWindow(QWidget):
    """Главное окно: адреса до/после и переключатель прокси"""

    def __init__(self, service, view_bridge):
        super().__init__()
        self.service = service
        self.view_bridge = view_bridge
        self.toggle_state = ToggleState.DISABLED
        self._init_ui()
        self._connect_bridge()

    def _init_ui(self):
        """Инициализация UI"""
        self.setWindowTitle("TorSwitch")
        self.setMinimumWidth(380)
        try:
            from ui.icons import get_icon_manager, ICON_WINDOW
            self.setWindowIcon(get_icon_manager().get_icon(ICON_WINDOW))
        except Exception as e:
            logger.warning(f"Не удалось загрузить иконку окна: {e}")

        # Восстанавливаем размеры и позицию окна из конфига
        self._restore_window_geometry()

        from core.config_manager import get_config
        config = get_config()

        layout = QVBoxLayout()

        # ========== СЕКЦИЯ 1: Proxy ==========
        proxy_group = QGroupBox("SOCKS5 Proxy")
        proxy_layout = QFormLayout()

        self.host_input = QLineEdit(config.get('proxy.tor_host', '127.0.0.1'))
        self.host_input.setPlaceholderText("127.0.0.1")
        self.host_input.editingFinished.connect(self._validate_host_field)
        proxy_layout.addRow("Host:", self.host_input)

        self.port_input = QLineEdit(str(config.get('proxy.tor_port', 9150)))
        self.port_input.setPlaceholderText("9150")
        self.port_input.editingFinished.connect(self._validate_port_field)
        proxy_layout.addRow("Port:", self.port_input)

        proxy_group.setLayout(proxy_layout)
        layout.addWidget(proxy_group)

        # ========== СЕКЦИЯ 2: Identity ==========
        identity_group = QGroupBox("Public Address")
        identity_layout = QFormLayout()

        self.identity_labels = {}
        for slot, caption in ((Slot.BEFORE, "Direct:"), (Slot.AFTER, "Via Tor:")):
            label = QLabel(EMPTY_TEXT)
            label.setObjectName("identityLabel")
            label.setTextInteractionFlags(Qt.TextInteractionFlag.TextSelectableByMouse)
            identity_layout.addRow(caption, label)
            self.identity_labels[slot.value] = label

        identity_group.setLayout(identity_layout)
        layout.addWidget(identity_group)

        # ========== СЕКЦИЯ 3: Status ==========
        indicator_layout = QHBoxLayout()
        self.indicator_label = QLabel("○")
        self.indicator_label.setObjectName("indicatorLabel")
        indicator_layout.addWidget(self.indicator_label)

        self.leak_label = QLabel()
        self.leak_label.setObjectName("leakLabel")
        indicator_layout.addWidget(self.leak_label)
        indicator_layout.addStretch()
        layout.addLayout(indicator_layout)

        self.status_label = QLabel("")
        self.status_label.setObjectName("statusLabel")
        self.status_label.setWordWrap(True)
        layout.addWidget(self.status_label)

        # ========== СЕКЦИЯ 4: Controls ==========
        controls_layout = QHBoxLayout()

        self.toggle_btn = QPushButton()
        self.toggle_btn.setObjectName("toggleButton")
        self.toggle_btn.setMinimumHeight(40)
        self.toggle_btn.clicked.connect(self.on_toggle)
        controls_layout.addWidget(self.toggle_btn)

        self.refresh_btn = QPushButton("Refresh")
        self.refresh_btn.setMinimumHeight(40)
        self.refresh_btn.clicked.connect(self.on_refresh)
        controls_layout.addWidget(self.refresh_btn)

        layout.addLayout(controls_layout)
        layout.addStretch()
        self.setLayout(layout)

        self.set_toggle_state(ToggleState.DISABLED.value)

    def _connect_bridge(self):
        self.view_bridge.identity_changed.connect(self.set_identity)
        self.view_bridge.status_changed.connect(self.set_status)
        self.view_bridge.toggle_state_changed.connect(self.set_toggle_state)
        self.view_bridge.proxy_endpoint_changed.connect(self.set_proxy_endpoint)

    # ---------- слоты, вызываются в GUI потоке ----------

    def set_identity(self, slot, text, state):
        label = self.identity_labels[slot]
        label.setText(text)
        label.setProperty("state", state)
        _repolish(label)

    def set_status(self, message, kind):
        self.status_label.setText(message)
        self.status_label.setProperty("kind", kind)
        _repolish(self.status_label)

    def set_proxy_endpoint(self, host, port):
        self.host_input.setText(host)
        self.port_input.setText(str(port))

    def set_toggle_state(self, state):
        self.toggle_state = ToggleState(state)
        enabled = self.toggle_state is ToggleState.ENABLED
        busy = self.toggle_state.transitional

        self.toggle_btn.setEnabled(not busy)
        self.toggle_btn.setText("Disable Tor" if enabled else "Enable Tor")
        self.toggle_btn.setProperty("mode", "disable" if enabled else "enable")
        _repolish(self.toggle_btn)

        self.host_input.setEnabled(not enabled and not busy)
        self.port_input.setEnabled(not enabled and not busy)

        self.indicator_label.setText("●" if enabled else "○")
        self.indicator_label.setProperty("active", "true" if enabled else "false")
        _repolish(self.indicator_label)

        self.leak_label.setText("Leak protection: Active" if enabled else "Leak protection: Off")
        self.leak_label.setProperty("protected", "true" if enabled else "false")
        _repolish(self.leak_label)

    # ---------- действия пользователя ----------

    def on_toggle(self):
        """Кнопка Enable/Disable"""
        host = self.host_input.text()
        port = self.port_input.text()
        self.service.toggle(host, port).add_done_callback(self._on_toggle_done)

        # Запоминаем валидный адрес прокси для следующего запуска
        host_ok, host_value = validate_host_input(host)
        port_ok, port_value = validate_port_input(port)
        if host_ok and port_ok:
            from core.config_manager import get_config
            config = get_config()
            config.set('proxy.tor_host', host_value)
            config.set('proxy.tor_port', port_value, save=True)

    def _on_toggle_done(self, future):
        # вызывается в потоке event loop, UI не трогаем
        if not future.cancelled() and future.exception() is not None:
            logger.error(f"❌ Toggle failed: {future.exception()!r}")

    def on_refresh(self):
        self.service.refresh(Slot.BEFORE, force_refresh=True)
        if self.toggle_state is ToggleState.ENABLED:
            self.service.refresh(Slot.AFTER, force_refresh=True)

    def _validate_host_field(self):
        ok, _ = validate_host_input(self.host_input.text())
        self.host_input.setProperty("invalid", "true" if not ok and self.host_input.text().strip() else "false")
        _repolish(self.host_input)

    def _validate_port_field(self):
        ok, _ = validate_port_input(self.port_input.text())
        self.port_input.setProperty("invalid", "true" if not ok and self.port_input.text().strip() else "false")
        _repolish(self.port_input)

    # ---------- геометрия и тема ----------

    def _restore_window_geometry(self):
        """Восстанавливает размеры и позицию окна из конфига"""
        from core.config_manager import get_config
        config = get_config()

        width = config.get('ui.window_width', 420)
        height = config.get('ui.window_height', 360)
        x = config.get('ui.window_x')
        y = config.get('ui.window_y')

        self.resize(width, height)

        # Если позиция сохранена, восстанавливаем её, иначе центрируем
        if x is None or y is None:
            from PySide6.QtWidgets import QApplication
            screen = QApplication.primaryScreen().geometry()
            x = (screen.width() - width) // 2
            y = (screen.height() - height) // 2
        self.move(x, y)

    def _save_window_geometry(self):
        """Сохраняет текущие размеры и позицию окна в конфиг"""
        from core.config_manager import get_config
        config = get_config()

        geometry = self.geometry()
        config.set('ui.window_width', geometry.width())
        config.set('ui.window_height', geometry.height())
        config.set('ui.window_x', geometry.x())
        config.set('ui.window_y', geometry.y())
        config.save()

    def apply_theme(self):
        """Применяет текущую тему к главному окну"""
        from ui.theme_manager import get_theme_manager
        theme_manager = get_theme_manager()
        self.setStyleSheet(theme_manager.get_stylesheet())
        logger.info(f"Применена тема: {theme_manager.current_theme}")

    def closeEvent(self, event):
        """Обработка закрытия окна"""
        self._save_window_geometry()

        from core.config_manager import get_config
        if get_config().get('application.minimize_to_tray', True):
            # Окно прячется в трей, сервис продолжает работать
            event.accept()
            return

        reply = QMessageBox.question(
            self,
            "Exit Application",
            "Close TorSwitch? The proxy setting is kept for the next start.",
            QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No,
            QMessageBox.StandardButton.No
        )
        if reply == QMessageBox.StandardButton.Yes:
            event.accept()
            from PySide6.QtWidgets import QApplication
            QApplication.instance().quit()
        else:
            event.ignore()
