# ui/colors.py
COLORS = {
    # Тёмная тема
    "primary_bg": "#1B1B22",  # Фон окна
    "card_bg": "#24232D",  # Фон групп
    "input_bg": "#2C2B36",  # Фон полей ввода
    "border": "#3E3C4B",
    "text_primary": "#F2F0F7",
    "text_secondary": "#B9B4C8",
    "text_muted": "#7A7590",

    # Состояния
    "accent": "#7D4698",  # Tor purple
    "accent_hover": "#9359B0",
    "success": "#2FBF71",
    "error": "#E5484D",
    "loading": "#C9A227",
}

COLORS_LIGHT = {
    # Светлая тема
    "primary_bg": "#FFFFFF",
    "card_bg": "#F6F5F9",
    "input_bg": "#FFFFFF",
    "border": "#D9D6E2",
    "text_primary": "#16141D",
    "text_secondary": "#4D4860",
    "text_muted": "#8C879D",

    "accent": "#7D4698",
    "accent_hover": "#6A3A82",
    "success": "#1E9E5A",
    "error": "#D13438",
    "loading": "#A27F10",
}
