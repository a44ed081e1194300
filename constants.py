"""Shared constants for the SSH fleet monitor."""

# Probe commands run on every host, one per ratio.
# CPU reports the idle percentage; utilization is derived as 100 - idle.
CPU_IDLE_CMD = "top -bn1 | grep 'Cpu(s)' | sed 's/.*, *\\([0-9.]*\\)%* id.*/\\1/'"
DISK_USED_CMD = "df / | tail -1 | awk '{print $5}' | sed 's/%//'"
MEM_USED_CMD = "free | grep Mem | awk '{print $3/$2 * 100.0}'"

DEFAULT_CONFIG_PATH = "configs/hosts.yaml"
DEFAULT_SSH_PORT = 22

POLL_INTERVAL = 2.0      # Seconds between collection cycles
TICK_INTERVAL = 0.1      # UI timer period (animation + poll scheduling)
CONNECT_TIMEOUT = 5.0    # Seconds to open an SSH session

# Colour thresholds for percentage text
COLOR_YELLOW_ABOVE = 50.0
COLOR_RED_ABOVE = 80.0

BAR_WIDTH = 30
BAR_FILL = "█"
BAR_EMPTY = "░"
SPINNER_FRAMES = "⠋⠙⠹⠸⠼⠴⠦⠧⠇⠏"
