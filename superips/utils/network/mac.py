import re
from typing import Optional

from netaddr import EUI, AddrFormatError, mac_unix_expanded

MAC_REGEX = re.compile(r'([0-9A-Fa-f]{1,2}[:-]){5}[0-9A-Fa-f]{1,2}')

# OUI (três primeiros octetos) -> fabricante
FABRICANTES_OUI = {
    '00:50:56': 'VMware',
    '00:0C:29': 'VMware',
    '00:05:69': 'VMware',
    '08:00:27': 'VirtualBox',
    '00:15:5D': 'Hyper-V',
    '00:1C:B3': 'Apple',
    'AC:BC:32': 'Apple',
    'F0:18:98': 'Apple',
    '00:14:22': 'Dell',
    'B8:AC:6F': 'Dell',
    'F8:BC:12': 'Dell',
    '00:1B:78': 'HP',
    '3C:D9:2B': 'HP',
    '00:21:5A': 'HP',
    '00:05:5D': 'D-Link',
    '1C:7E:E5': 'D-Link',
    '50:C7:BF': 'TP-Link',
    'F4:F2:6D': 'TP-Link',
    '00:1B:54': 'Cisco',
    '00:26:0B': 'Cisco',
    'C0:56:E3': 'Hikvision',
    '44:19:B6': 'Hikvision',
    '00:1A:3F': 'Intelbras',
    '00:26:AB': 'Epson',
    '00:80:77': 'Brother',
}


def normalizar_mac(mac: Optional[str]) -> Optional[str]:
    """Formato XX:XX:XX:XX:XX:XX em maiúsculas; None se inválido ou zerado."""
    if not mac:
        return None
    try:
        eui = EUI(mac.strip(), dialect=mac_unix_expanded)
    except (AddrFormatError, TypeError, ValueError):
        return None
    normalizado = str(eui).upper()
    if normalizado in ('00:00:00:00:00:00', 'FF:FF:FF:FF:FF:FF'):
        return None
    return normalizado


def fabricante_por_mac(mac: Optional[str]) -> Optional[str]:
    normalizado = normalizar_mac(mac)
    if not normalizado:
        return None
    return FABRICANTES_OUI.get(normalizado[:8])


def extrair_mac(texto: str) -> Optional[str]:
    """Primeiro MAC encontrado em uma saída de comando (arp, ip neigh, nmblookup)."""
    if not texto:
        return None
    encontrado = MAC_REGEX.search(texto)
    return normalizar_mac(encontrado.group(0)) if encontrado else None
