# utils/single_instance.py
"""
Single instance lock.

The lock file stores the owner's PID and the port of its control endpoint,
so a second launch can forward --enable/--disable/--status to it.
"""

import json
import logging
import os
from pathlib import Path
from typing import Optional

import psutil

logger = logging.getLogger(__name__)


class SingleInstance:
    """Файловая блокировка единственного экземпляра"""

    def __init__(self, lockfile: Path):
        self.lockfile = Path(lockfile)
        self.locked = False

    def lock(self, control_port: Optional[int] = None) -> bool:
        """Захватывает блокировку; False если приложение уже запущено"""
        self.lockfile.parent.mkdir(parents=True, exist_ok=True)
        payload = json.dumps({'pid': os.getpid(), 'control_port': control_port})

        try:
            fd = os.open(self.lockfile, os.O_CREAT | os.O_EXCL | os.O_WRONLY)
        except FileExistsError:
            if self.owner_pid() is not None:
                logger.warning(f"⚠️ Приложение уже запущено (файл блокировки {self.lockfile} существует)")
                return False
            # Процесс мертв - удаляем старый файл и пробуем снова
            logger.info("🗑️ Удален старый файл блокировки")
            self.lockfile.unlink(missing_ok=True)
            return self.lock(control_port)
        except OSError as e:
            logger.error(f"❌ Ошибка файловой блокировки: {e}")
            return False

        with os.fdopen(fd, 'w') as f:
            f.write(payload)
        self.locked = True
        logger.info(f"✅ Файловая блокировка создана: {self.lockfile}")
        return True

    def _read(self) -> dict:
        try:
            with open(self.lockfile, 'r') as f:
                data = json.load(f)
            return data if isinstance(data, dict) else {}
        except (OSError, json.JSONDecodeError):
            return {}

    def owner_pid(self) -> Optional[int]:
        """PID живого владельца блокировки или None"""
        pid = self._read().get('pid')
        if isinstance(pid, int) and pid != os.getpid() and psutil.pid_exists(pid):
            return pid
        return None

    def owner_control_port(self) -> Optional[int]:
        port = self._read().get('control_port')
        return port if isinstance(port, int) else None

    def unlock(self):
        """Освобождает файловую блокировку"""
        if not self.locked:
            return
        try:
            self.lockfile.unlink(missing_ok=True)
            logger.debug(f"🔓 Файловая блокировка удалена: {self.lockfile}")
        except OSError as e:
            logger.debug(f"Ошибка при удалении файла блокировки: {e}")
        finally:
            self.locked = False


def get_single_instance() -> SingleInstance:
    """Возвращает блокировку в каталоге данных приложения"""
    from core.config_manager import get_app_data_dir
    return SingleInstance(get_app_data_dir() / "torswitch_client.lock")
