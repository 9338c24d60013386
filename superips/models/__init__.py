from .Device import Device, Vlan, TABELAS
from .PingHistory import PingHistory
from .Setting import Setting
from .NetworkRange import NetworkRange
from .DiscoveryStatus import DiscoveryStatus

__all__ = [
    "Device",
    "Vlan",
    "TABELAS",
    "PingHistory",
    "Setting",
    "NetworkRange",
    "DiscoveryStatus",
]
