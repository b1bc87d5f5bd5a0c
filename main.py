# main.py
import argparse
import json
import sys
import logging
from PySide6.QtWidgets import QApplication, QMessageBox
from ui.icons import get_icon_manager, ICON_WINDOW


def setup_logging():
    """Настраивает логирование ДО всех операций с ротацией"""
    from core.config_manager import get_app_data_dir
    from logging.handlers import RotatingFileHandler

    app_data_dir = get_app_data_dir()
    logs_dir = app_data_dir / "logs"
    logs_dir.mkdir(exist_ok=True)

    log_file = logs_dir / "torswitch_client.log"

    # Ротирующий обработчик: макс 5MB, 5 резервных копий
    file_handler = RotatingFileHandler(
        log_file,
        maxBytes=5 * 1024 * 1024,  # 5MB
        backupCount=5,
        encoding='utf-8'
    )
    file_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    console_handler = logging.StreamHandler()
    console_handler.setFormatter(
        logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
    )

    logging.basicConfig(
        level=logging.INFO,
        handlers=[console_handler, file_handler]
    )


# НАСТРАИВАЕМ ЛОГИРОВАНИЕ САМЫМ ПЕРВЫМ ДЕЛОМ
setup_logging()
logger = logging.getLogger(__name__)


def setup_exception_handler():
    """Настраивает глобальный обработчик исключений"""

    def exception_handler(exc_type, exc_value, exc_traceback):
        if issubclass(exc_type, KeyboardInterrupt):
            sys.__excepthook__(exc_type, exc_value, exc_traceback)
            return

        logger.critical("Необработанное исключение:",
                        exc_info=(exc_type, exc_value, exc_traceback))

        if QApplication.instance():
            QMessageBox.critical(
                None,
                "Критическая ошибка",
                f"Произошла критическая ошибка:\n{exc_value}\n\n"
                "Подробности в лог-файле."
            )

    sys.excepthook = exception_handler


def parse_args(argv=None):
    parser = argparse.ArgumentParser(prog="torswitch", description="Tor SOCKS5 proxy toggle")
    command = parser.add_mutually_exclusive_group()
    command.add_argument("--enable", action="store_true", help="enable the proxy in the running instance")
    command.add_argument("--disable", action="store_true", help="disable the proxy in the running instance")
    command.add_argument("--status", action="store_true", help="print the proxy state of the running instance")
    parser.add_argument("--host", default=None, help="SOCKS5 host for --enable")
    parser.add_argument("--port", default=None, help="SOCKS5 port for --enable")
    return parser.parse_args(argv)


def build_control_message(args):
    """Сообщение для запущенного экземпляра или None без флагов"""
    from core.config_manager import get_config
    from core.messages import DisableRequest, EnableRequest, StatusRequest

    if args.enable:
        config = get_config()
        return EnableRequest(
            host=args.host or config.get('proxy.tor_host', '127.0.0.1'),
            port=args.port or config.get('proxy.tor_port', 9150),
        )
    if args.disable:
        return DisableRequest()
    if args.status:
        return StatusRequest()
    return None


def forward_to_running_instance(message, instance_lock) -> int:
    """Передает команду запущенному экземпляру через control endpoint"""
    from core.config_manager import get_config
    from core.messages import parse_response
    from core.errors import MessageError
    from utils.remote_control import send_control_message

    port = instance_lock.owner_control_port() or get_config().get('control.port', 61090)
    response = send_control_message(message.to_dict(), port=port)
    if response is None:
        print("TorSwitch is not reachable", file=sys.stderr)
        return 1

    try:
        result = parse_response(message, response)
    except MessageError as e:
        print(f"Invalid response: {e}", file=sys.stderr)
        return 1

    print(json.dumps(result.to_dict()))
    return 0 if getattr(result, 'ok', True) else 1


def main(argv=None):
    """Основная функция приложения"""
    args = parse_args(argv)
    message = build_control_message(args)

    logger.info("🔍 Проверка единственного экземпляра...")

    from core.config_manager import get_config
    from utils.single_instance import get_single_instance

    config = get_config()
    instance_lock = get_single_instance()

    if instance_lock.owner_pid() is not None:
        if message is not None:
            return forward_to_running_instance(message, instance_lock)
        show_already_running_message()
        return 1

    if message is not None:
        print("TorSwitch is not running", file=sys.stderr)
        return 1

    control_port = config.get('control.port', 61090) if config.get('control.enabled', True) else None
    if not instance_lock.lock(control_port):
        show_already_running_message()
        return 1

    app = None
    service = None

    try:
        # Создаем приложение
        app = QApplication(sys.argv[:1])
        app.setApplicationName("TorSwitch")
        app.setApplicationVersion("1.0.0")
        app.setQuitOnLastWindowClosed(False)
        app.setWindowIcon(get_icon_manager().get_icon(ICON_WINDOW))

        # Настраиваем обработчик исключений
        setup_exception_handler()

        logger.info("🚀 Запуск TorSwitch")

        from ui.identity_bridge import QtIdentityView
        from core.tor_service import TorSwitchService

        view_bridge = QtIdentityView()
        service = TorSwitchService(view_bridge, config=config)

        from ui.tray_icon import TrayIcon
        tray_icon = TrayIcon(app, service, view_bridge)
        tray_icon.show()

        # MainWindow создается только если не запущен в свернутом виде
        # или при клике на трее (lazy loading)
        if not config.get('application.start_minimized', False):
            from ui.main_window import MainWindow
            main_window = MainWindow(service, view_bridge)
            main_window.apply_theme()  # Применяем тему ДО show()
            main_window.show()
            tray_icon.main_window = main_window
        else:
            logger.info("🚀 Запуск в свернутом режиме, окно будет создано по требованию")

        # Сигналы окна подключены, можно запускать ядро
        if not service.start():
            QMessageBox.critical(None, "Ошибка инициализации", "Не удалось запустить ядро приложения")
            instance_lock.unlock()
            return 1

        logger.info("✅ Приложение запущено успешно")

        # Обработчик завершения приложения
        def cleanup():
            logger.info("🛑 Завершение работы приложения")
            service.stop()
            # Освобождаем блокировку приложения
            instance_lock.unlock()

        app.aboutToQuit.connect(cleanup)

        # Запускаем главный цикл
        return app.exec()

    except Exception as e:
        logger.critical(f"Критическая ошибка при запуске: {e}", exc_info=True)

        if service:
            service.stop()
        # Освобождаем блокировку при ошибке
        instance_lock.unlock()

        if app:
            QMessageBox.critical(
                None,
                "Ошибка запуска",
                f"Не удалось запустить приложение:\n{e}"
            )
        return 1


def show_already_running_message():
    """Показывает сообщение о том, что приложение уже запущено"""
    temp_app = QApplication([])
    temp_app.setWindowIcon(get_icon_manager().get_icon(ICON_WINDOW))
    QMessageBox.information(
        None,
        "TorSwitch",
        "Приложение уже запущено.\n\n"
        "Проверьте системный трей."
    )
    temp_app.quit()

    logger.info("⚠️ Попытка запуска второго экземпляра - завершение")


if __name__ == "__main__":
    sys.exit(main())
