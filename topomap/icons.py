ICON_ROOT = "/static/assets"

ICONS = {
    "Linux": f"{ICON_ROOT}/Linux.svg",
    "Windows": f"{ICON_ROOT}/Windows.svg",
    "Mac": f"{ICON_ROOT}/Mac.svg",
    "Unknown": f"{ICON_ROOT}/Unknown.svg",
}

# marker symbols for the plotly rendering, keyed like ICONS
SYMBOLS = {
    "Linux": "circle",
    "Windows": "square",
    "Mac": "diamond",
    "Unknown": "circle-open",
}


def icon_for(os_name):
    return ICONS.get(os_name, ICONS["Unknown"])


def symbol_for(os_name):
    return SYMBOLS.get(os_name, SYMBOLS["Unknown"])
