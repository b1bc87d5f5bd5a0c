# ui/tray_icon.py
import logging
from PySide6.QtWidgets import QSystemTrayIcon, QMenu, QMessageBox
from PySide6.QtGui import QAction

from core.toggle_machine import ToggleState
from ui.icons import get_icon_manager, ICON_PROXY_ON, ICON_PROXY_OFF, ICON_WINDOW

logger = logging.getLogger(__name__)


class TrayIcon(QSystemTrayIcon):
    def __init__(self, app, service, view_bridge):
        super().__init__()
        self.app = app
        self.service = service
        self.view_bridge = view_bridge
        self.main_window = None
        self.toggle_state = ToggleState.DISABLED
        self.proxy_endpoint = None

        self.setup_ui()
        self.view_bridge.toggle_state_changed.connect(self.update_status)
        self.view_bridge.proxy_endpoint_changed.connect(self.on_proxy_endpoint)

    def setup_ui(self):
        # Красная иконка по умолчанию, прокси выключен
        self.setIcon(get_icon_manager().get_icon(ICON_PROXY_OFF))
        self.setToolTip("TorSwitch - Direct connection")

        menu = QMenu()

        show_action = QAction("Показать окно", self)
        show_action.triggered.connect(self.show_main_window)

        self.toggle_action = QAction("Enable Tor", self)
        self.toggle_action.triggered.connect(self.toggle_proxy)

        theme_action = QAction("Переключить тему", self)
        theme_action.triggered.connect(self.toggle_theme)

        menu.addAction(show_action)
        menu.addAction(self.toggle_action)
        menu.addSeparator()
        menu.addAction(theme_action)
        menu.addSeparator()

        exit_action = QAction("Выход", self)
        exit_action.triggered.connect(self.exit_app)
        menu.addAction(exit_action)

        self.setContextMenu(menu)
        self.activated.connect(self.on_tray_activated)

    def on_proxy_endpoint(self, host, port):
        self.proxy_endpoint = (host, port)

    def update_status(self, state):
        """Обновляет иконку и подсказку по состоянию прокси"""
        self.toggle_state = ToggleState(state)
        icon_manager = get_icon_manager()

        if self.toggle_state is ToggleState.ENABLED:
            self.setIcon(icon_manager.get_icon(ICON_PROXY_ON))
            tooltip = "TorSwitch - Tor enabled"
            if self.proxy_endpoint:
                tooltip += f"\nSOCKS5: {self.proxy_endpoint[0]}:{self.proxy_endpoint[1]}"
            self.toggle_action.setText("Disable Tor")
        else:
            self.setIcon(icon_manager.get_icon(ICON_PROXY_OFF))
            tooltip = "TorSwitch - Direct connection"
            self.toggle_action.setText("Enable Tor")

        self.toggle_action.setEnabled(not self.toggle_state.transitional)
        self.setToolTip(tooltip)

    def toggle_proxy(self):
        """Переключает прокси с адресом из окна или последним известным"""
        if self.main_window:
            host = self.main_window.host_input.text()
            port = self.main_window.port_input.text()
        elif self.proxy_endpoint:
            host, port = self.proxy_endpoint
        else:
            from core.config_manager import get_config
            config = get_config()
            host = config.get('proxy.tor_host', '127.0.0.1')
            port = config.get('proxy.tor_port', 9150)
        self.service.toggle(host, str(port))

    def show_main_window(self):
        """Показывает главное окно"""
        if not self.main_window:
            from ui.main_window import MainWindow
            self.main_window = MainWindow(self.service, self.view_bridge)
            self.main_window.set_toggle_state(self.toggle_state.value)
            if self.proxy_endpoint:
                self.main_window.set_proxy_endpoint(*self.proxy_endpoint)
            self.main_window.apply_theme()  # Применяем тему при lazy loading
            # Адреса могли прийти до создания окна
            self.service.refresh_all()
        self.main_window.show()
        self.main_window.raise_()
        self.main_window.activateWindow()

    def on_tray_activated(self, reason):
        """Обрабатывает активацию иконки в трее"""
        if reason == QSystemTrayIcon.ActivationReason.DoubleClick:
            self.show_main_window()

    def exit_app(self):
        """Выход из приложения"""
        msg_box = QMessageBox()
        msg_box.setWindowIcon(get_icon_manager().get_icon(ICON_WINDOW))
        msg_box.setWindowTitle('Подтверждение выхода')
        msg_box.setText('Вы уверены, что хотите выйти? Настройка прокси сохранится до следующего запуска.')
        msg_box.setIcon(QMessageBox.Icon.Question)
        msg_box.setStandardButtons(QMessageBox.StandardButton.Yes | QMessageBox.StandardButton.No)
        msg_box.setDefaultButton(QMessageBox.StandardButton.No)

        if msg_box.exec() == QMessageBox.StandardButton.Yes:
            logger.info("Приложение завершено")
            # Сервис останавливается в обработчике aboutToQuit
            self.app.quit()

    def toggle_theme(self):
        """Переключает тему приложения"""
        from ui.theme_manager import get_theme_manager
        new_theme = get_theme_manager().toggle_theme()

        if self.main_window:
            self.main_window.apply_theme()

        self.showMessage(
            "TorSwitch",
            f"Тема переключена: {'Светлая' if new_theme == 'light' else 'Тёмная'}",
            QSystemTrayIcon.MessageIcon.Information,
            2000
        )
