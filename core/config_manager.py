import json
import sys
import logging
from pathlib import Path
from typing import Dict, Any
import os

logger = logging.getLogger(__name__)

# Интервалы в секундах из секции identity
IDENTITY_INTERVALS = (
    'cache_duration', 'ip_fetch_timeout', 'country_fetch_timeout', 'settle_delay', 'toggle_debounce',
)


def get_app_data_dir():
    """Возвращает путь для хранения данных приложения"""
    if getattr(sys, 'frozen', False):
        # Для рабочих файлов (конфиг, логи, состояние) используем AppData
        if os.name == 'nt':  # Windows
            appdata_dir = Path(os.getenv('LOCALAPPDATA', Path.home() / 'AppData' / 'Local'))
            app_data_dir = appdata_dir / 'TorSwitch'
        else:  # Linux/Mac
            app_data_dir = Path.home() / '.config' / 'torswitch'
    else:
        # Dev режим
        app_data_dir = Path(__file__).parent.parent / 'app_data'

    app_data_dir.mkdir(parents=True, exist_ok=True)
    return app_data_dir


class ConfigManager:
    def __init__(self, config_path: Path = None):
        self.config_path = config_path or self._get_config_path()
        self.config = self._load_config()

    def _get_config_path(self) -> Path:
        """Возвращает путь к файлу конфигурации"""
        return get_app_data_dir() / 'config.json'

    def _get_default_config(self) -> dict:
        """Возвращает конфигурацию по умолчанию"""
        return {
            'proxy': {
                'tor_host': '127.0.0.1',
                'tor_port': 9150,  # Tor Browser; системный tor слушает 9050
                'probe_timeout': 2.0,
            },

            'identity': {
                'cache_duration': 30.0,
                'ip_fetch_timeout': 3.0,
                'country_fetch_timeout': 2.0,
                'settle_delay': 0.05,
                'toggle_debounce': 0.5,
                'ip_service_url': 'https://api.ipify.org?format=json',
                'geo_service_url': 'http://ip-api.com/json/{address}?fields=country',
            },

            'control': {
                'enabled': True,
                'port': 61090,
            },

            'application': {
                'minimize_to_tray': True,
                'start_minimized': False,
                'theme': 'dark'
            },

            'ui': {
                'window_width': 420,
                'window_height': 360,
                'window_x': None,  # Позиция окна X (None = center)
                'window_y': None,  # Позиция окна Y (None = center)
            }
        }

    def _load_config(self) -> Dict[str, Any]:
        """Загружает конфигурацию из файла"""
        default_config = self._get_default_config()

        try:
            if self.config_path.exists():
                with open(self.config_path, 'r', encoding='utf-8') as f:
                    loaded_config = json.load(f)
                    # Объединяем с дефолтными значениями
                    return self._deep_merge(default_config, loaded_config)
        except (OSError, json.JSONDecodeError) as e:
            logger.error(f"Ошибка загрузки конфига: {e}")

        return default_config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Рекурсивное объединение словарей"""
        result = base.copy()

        for key, value in update.items():
            if (key in result and
                    isinstance(result[key], dict) and
                    isinstance(value, dict)):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    def save(self) -> bool:
        """Сохраняет конфигурацию в файл"""
        try:
            with open(self.config_path, 'w', encoding='utf-8') as f:
                json.dump(self.config, f, indent=2, ensure_ascii=False)
            logger.info("Конфигурация сохранена")
            return True
        except OSError as e:
            logger.error(f"Ошибка сохранения конфига: {e}")
            return False

    def get(self, key: str, default: Any = None) -> Any:
        """Получает значение по ключу (dot notation)"""
        value = self.config
        for k in key.split('.'):
            if isinstance(value, dict) and k in value:
                value = value[k]
            else:
                return default
        return value

    def set(self, key: str, value: Any, save: bool = False) -> bool:
        """Устанавливает значение по ключу (dot notation)"""
        keys = key.split('.')
        config_ref = self.config

        for k in keys[:-1]:
            if k not in config_ref or not isinstance(config_ref[k], dict):
                config_ref[k] = {}
            config_ref = config_ref[k]

        config_ref[keys[-1]] = value

        if save:
            return self.save()
        return True

    def get_identity_config(self) -> Dict[str, Any]:
        """
        Возвращает настройки проверки адреса.

        Отрицательные и нечисловые интервалы заменяются значениями по умолчанию.
        """
        defaults = self._get_default_config()['identity']
        identity = dict(defaults)
        identity.update(self.get('identity', {}))

        for key in IDENTITY_INTERVALS:
            value = identity[key]
            if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                logger.warning(f"⚠️ Некорректное значение identity.{key}={value!r}, используется {defaults[key]}")
                identity[key] = defaults[key]
        return identity

    def get_proxy_config(self) -> Dict[str, Any]:
        """Возвращает настройки прокси"""
        return self.get('proxy', {})

    def reset_to_defaults(self) -> bool:
        """Сбрасывает настройки к значениям по умолчанию"""
        self.config = self._get_default_config()
        return self.save()


# Синглтон для глобального доступа
_config_instance = None


def get_config() -> ConfigManager:
    """Возвращает глобальный экземпляр ConfigManager"""
    global _config_instance
    if _config_instance is None:
        _config_instance = ConfigManager()
    return _config_instance
