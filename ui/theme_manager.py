# ui/theme_manager.py
import logging
from ui.colors import COLORS, COLORS_LIGHT

logger = logging.getLogger(__name__)

# Один шаблон для обеих тем, цвета подставляются из ui/colors.py
STYLESHEET_TEMPLATE = """
QWidget {{
    background-color: {primary_bg};
    color: {text_primary};
    font-size: 13px;
}}

QGroupBox {{
    font-weight: bold;
    border: 1px solid {border};
    border-radius: 4px;
    margin-top: 10px;
    padding-top: 10px;
    background-color: {card_bg};
}}

QGroupBox::title {{
    subcontrol-origin: margin;
    subcontrol-position: top left;
    padding: 2px 8px;
    color: {text_secondary};
    margin-left: 10px;
}}

QLabel {{
    color: {text_secondary};
    background-color: transparent;
}}

QLineEdit {{
    background-color: {input_bg};
    color: {text_primary};
    border: 1px solid {border};
    border-radius: 3px;
    padding: 6px 8px;
}}

QLineEdit:focus {{
    border: 1px solid {accent};
}}

QLineEdit[invalid="true"] {{
    border: 1px solid {error};
}}

QPushButton {{
    background-color: {input_bg};
    color: {text_primary};
    border: 1px solid {border};
    border-radius: 3px;
    padding: 8px 16px;
    font-weight: bold;
    min-width: 90px;
}}

QPushButton:disabled {{
    color: {text_muted};
}}

QPushButton#toggleButton[mode="enable"] {{
    background-color: {success};
    border: 1px solid {success};
    color: #FFFFFF;
}}

QPushButton#toggleButton[mode="disable"] {{
    background-color: {error};
    border: 1px solid {error};
    color: #FFFFFF;
}}

QPushButton#toggleButton:disabled {{
    background-color: {input_bg};
    border: 1px solid {border};
    color: {text_muted};
}}

/* Адреса до/после */
QLabel#identityLabel {{
    font-family: monospace;
    color: {text_primary};
}}

QLabel#identityLabel[state="loading"] {{
    color: {loading};
    font-style: italic;
}}

QLabel#identityLabel[state="success"] {{
    color: {success};
}}

QLabel#identityLabel[state="error"] {{
    color: {error};
}}

QLabel#statusLabel[kind="success"] {{
    color: {success};
}}

QLabel#statusLabel[kind="error"] {{
    color: {error};
}}

QLabel#indicatorLabel {{
    color: {text_muted};
    font-size: 16px;
}}

QLabel#indicatorLabel[active="true"] {{
    color: {success};
}}

QLabel#leakLabel[protected="true"] {{
    color: {success};
}}

QLabel#leakLabel[protected="false"] {{
    color: {error};
}}
"""


class ThemeManager:
    def __init__(self):
        # Загружаем тему из конфига
        from core.config_manager import get_config
        config = get_config()
        self.current_theme = config.get('application.theme', 'dark')

    def toggle_theme(self):
        """Переключает между светлой и темной темой"""
        self.current_theme = "light" if self.current_theme == "dark" else "dark"

        # Сохраняем в конфиг
        from core.config_manager import get_config
        get_config().set('application.theme', self.current_theme, save=True)

        logger.info(f"🔄 Переключена тема: {self.current_theme}")
        return self.current_theme

    def get_current_colors(self):
        """Возвращает цвета текущей темы"""
        return COLORS_LIGHT if self.current_theme == "light" else COLORS

    def get_stylesheet(self):
        """Возвращает стили для текущей темы"""
        return STYLESHEET_TEMPLATE.format(**self.get_current_colors())


# Синглтон
_theme_manager = None


def get_theme_manager():
    global _theme_manager
    if _theme_manager is None:
        _theme_manager = ThemeManager()
    return _theme_manager
