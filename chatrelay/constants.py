# chatrelay line protocol constants

# Server -> client command words
CMD_SUBMITNAME = "SUBMITNAME"
CMD_NAMEACCEPTED = "NAMEACCEPTED"
CMD_MESSAGE = "MESSAGE"
CMD_COORDINATOR = "COORDINATOR"
CMD_MEMBERS = "MEMBERS"

# Client -> server markers
PM_PREFIX = "/["
PM_CLOSE = "]"
QUIT_PREFIX = "/quit"

# Rendering of an absent coordinator in COORDINATOR lines.
NO_COORDINATOR = "null"

# Display time in MESSAGE lines and activity events.
TIME_FORMAT = "%H:%M"
# Activity log start marker.
START_TIME_FORMAT = "%d/%m/%y %H:%M"

# Defaults
DEFAULT_HOST = "0.0.0.0"
DEFAULT_PORT = 59001
DEFAULT_MAX_WORKERS = 100
# 0 means no limit on name length.
NAME_MAX_CHARS = 0
# Seconds a single line write may take before the client is cut off.
WRITE_TIMEOUT_S = 5.0
