# hostd instance

from .hostd import Hostd, HostdModel, HostdCounters

hd = Hostd()

__all__ = ["hd", "Hostd", "HostdModel", "HostdCounters"]
