MEMORY_SIZE = 0x1000
ADDRESS_MASK = 0x0FFF
MEMORY_FILL = 0xFF          # Uninitialised cells read back as this

BYTE_MASK = 0xFF
NIBBLE_MASK = 0x0F

# Conventional load points of the bundled programs
LOADER_BASE = 0x000
DUMPER_BASE = 0xFC0

MAX_PAYLOAD = 0xFF          # Largest length the object header can carry
