import os

from dotenv import load_dotenv

load_dotenv()

# ---------- LAYOUT KNOBS ----------
LINK_DISTANCE = 150.0         # preferred node <-> connection separation
LINK_STRENGTH = 0.1           # spring stiffness
CHARGE_STRENGTH = -800.0      # pairwise repulsion (negative = repel)
CHARGE_DISTANCE_MIN = 1.0     # floor for the charge distance
CENTER_STRENGTH = 0.05        # pull of the centroid toward the viewport centre
COLLISION_MARGIN = 20.0       # clearance added to every visual radius
COLLISION_STRENGTH = 0.7
VELOCITY_DECAY = 0.4          # friction applied after every integration step
TIME_STEP = 1.0

ALPHA_START = 1.0
ALPHA_DECAY = 0.99            # alpha *= 0.99 per tick while cooling
ALPHA_MIN = 0.001
DRAG_ALPHA_TARGET = 0.3

# ---------- SIZES ----------
NODE_SIZE_BASE = 32
NODE_SIZE_PER_LINK = 4
NODE_SIZE_MAX = 64
CONNECTION_RADIUS = 15.0
SOURCE_PADDING = 4.0
ARROW_LENGTH = 10.0

# ---------- VIEWPORT ----------
MIN_SCALE = 0.1
MAX_SCALE = 4.0
ZOOM_IN_FACTOR = 1.2
ZOOM_OUT_FACTOR = 0.8
WHEEL_ZOOM_SENSITIVITY = 0.002
ZOOM_DURATION_MS = 300
PAN_STEP = 80

NODE_TYPES = ["server", "client", "network"]

# ---------- DASHBOARD ----------
TOPOLOGY_FILE = os.getenv("TOPOMAP_TOPOLOGY_FILE", "")
HOST = os.getenv("TOPOMAP_HOST", "127.0.0.1")
PORT = int(os.getenv("TOPOMAP_PORT", "8050"))
DEBUG = os.getenv("TOPOMAP_DEBUG", "false").lower() in ("1", "true", "yes")
LOG_LEVEL = os.getenv("TOPOMAP_LOG_LEVEL", "INFO").upper()
FRAME_MS = int(os.getenv("TOPOMAP_FRAME_MS", "50"))
VIEWPORT_WIDTH = int(os.getenv("TOPOMAP_WIDTH", "1200"))
VIEWPORT_HEIGHT = int(os.getenv("TOPOMAP_HEIGHT", "800"))
