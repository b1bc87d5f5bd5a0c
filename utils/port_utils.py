# utils/port_utils.py
import asyncio
import socket
import re
import psutil
import logging
from typing import Any, Optional, Dict, Tuple

logger = logging.getLogger(__name__)

DEFAULT_HOST = "127.0.0.1"
DEFAULT_PORT = 9150

_DOTTED_QUAD = re.compile(r'^(\d{1,3}\.){3}\d{1,3}$')


def _is_allowed_host(host: str) -> bool:
    return host in ('localhost', '127.0.0.1') or bool(_DOTTED_QUAD.match(host))


def validate_host_input(host: Optional[str]) -> Tuple[bool, str]:
    """Проверяет хост из поля ввода. Возвращает (ok, значение или сообщение об ошибке)"""
    trimmed = (host or '').strip()
    if not trimmed:
        return False, "Host cannot be empty"
    if not _is_allowed_host(trimmed):
        return False, "Invalid host format"
    return True, trimmed


def validate_port_input(port: Any) -> Tuple[bool, Any]:
    """Проверяет порт из поля ввода. Возвращает (ok, int или сообщение об ошибке)"""
    port_num = _parse_int(port)
    if port_num is None:
        return False, "Port must be a number"
    if port_num < 1 or port_num > 65535:
        return False, "Port must be between 1 and 65535"
    return True, port_num


def sanitize_host(host: Any) -> str:
    """Хост из control-сообщения: невалидное значение заменяется значением по умолчанию"""
    if not isinstance(host, str):
        return DEFAULT_HOST
    trimmed = host.strip()
    return trimmed if _is_allowed_host(trimmed) else DEFAULT_HOST


def sanitize_port(port: Any) -> int:
    port_num = _parse_int(port)
    if port_num is None or port_num < 1 or port_num > 65535:
        return DEFAULT_PORT
    return port_num


def _parse_int(value: Any) -> Optional[int]:
    """parseInt-like: leading digits of a string, ints as is"""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    match = re.match(r'^\s*([+-]?\d+)', str(value)) if value is not None else None
    return int(match.group(1)) if match else None


async def probe_port(host: str, port: int, timeout: float = 2.0) -> Tuple[bool, str]:
    """Пробует TCP соединение с host:port"""
    try:
        _, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout)
    except asyncio.TimeoutError:
        return False, f"Connection to {host}:{port} timed out"
    except OSError as e:
        return False, f"Cannot connect to {host}:{port}: {e.strerror or e}"

    writer.close()
    try:
        await writer.wait_closed()
    except OSError:
        pass
    return True, "OK"


def get_process_using_port(port: int) -> Optional[Dict]:
    """Возвращает информацию о процессе, слушающем порт"""
    try:
        for conn in psutil.net_connections(kind='inet'):
            try:
                if (conn.laddr and conn.laddr.port == port and
                        conn.status == psutil.CONN_LISTEN and conn.pid):
                    process = psutil.Process(conn.pid)
                    if process.is_running():
                        return {
                            'name': process.name(),
                            'pid': process.pid,
                        }
            except (psutil.NoSuchProcess, psutil.AccessDenied, psutil.ZombieProcess):
                continue
    except (psutil.AccessDenied, OSError) as e:
        logger.debug(f"Ошибка при поиске процесса на порту {port}: {e}")
    return None


def is_port_in_use(port: int, host: str = '127.0.0.1') -> bool:
    """Проверяет, занят ли локальный порт"""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        try:
            s.bind((host, port))
            return False
        except OSError:
            return True


def check_port_availability(port: int) -> Tuple[bool, str]:
    """Проверяет доступность порта и возвращает информацию о проблеме"""
    if not is_port_in_use(port):
        return True, "Порт свободен"

    process_info = get_process_using_port(port)
    if process_info:
        return False, (
            f"Порт {port} занят процессом {process_info['name']} "
            f"(PID: {process_info['pid']})"
        )
    return False, f"Порт {port} занят"
