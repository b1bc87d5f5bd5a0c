# ui/icons.py
from pathlib import Path
from PySide6.QtGui import QIcon, QPixmap, QPainter, QColor, Qt

ICON_PROXY_ON = "tor_on.png"
ICON_PROXY_OFF = "tor_off.png"
ICON_WINDOW = "window_img.png"

# Цвета запасных иконок, если файла нет
_FALLBACK_COLORS = {
    ICON_PROXY_ON: "#2FBF71",
    ICON_PROXY_OFF: "#E5484D",
}


class IconManager:
    def __init__(self, resources_dir: Path = None):
        self.resources_dir = resources_dir or Path(__file__).parent.parent / "resources"
        self._cache = {}

    def get_icon(self, icon_name):
        """Возвращает иконку по имени файла"""
        if icon_name not in self._cache:
            self._cache[icon_name] = QIcon(self.get_pixmap(icon_name, 32))
        return self._cache[icon_name]

    def get_pixmap(self, icon_name, size=16):
        """Возвращает QPixmap по имени файла"""
        icon_path = self.resources_dir / icon_name
        if icon_path.exists():
            pixmap = QPixmap(str(icon_path))
            return pixmap.scaled(size, size, Qt.KeepAspectRatio, Qt.SmoothTransformation)

        # Fallback - цветной кружок
        pixmap = QPixmap(size, size)
        pixmap.fill(Qt.transparent)
        painter = QPainter(pixmap)
        painter.setRenderHint(QPainter.Antialiasing)
        painter.setBrush(QColor(_FALLBACK_COLORS.get(icon_name, "#7D4698")))
        painter.setPen(Qt.NoPen)
        painter.drawEllipse(1, 1, size - 2, size - 2)
        painter.end()
        return pixmap


# Синглтон
_icon_manager = None


def get_icon_manager():
    global _icon_manager
    if _icon_manager is None:
        _icon_manager = IconManager()
    return _icon_manager
