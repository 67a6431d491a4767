from types import MappingProxyType

PLATFORM_EXTENSIONS = MappingProxyType({
    "NES": (".nes", ".unf", ".unif"),
    "SNES": (".sfc", ".smc"),
    "N64": (".n64", ".z64", ".v64"),
    "GBA": (".gba",),
    "GB": (".gb", ".gbc"),
    "ATARI": (".a26", ".bin"),
})


DEFAULT_CATEGORY = "Uncategorized"

# Region tags removed from titles
TITLE_REGION_TAGS = ("(USA)", "(Europe)", "(Japan)")
