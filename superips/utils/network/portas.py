import asyncio
import logging
from typing import Iterable, List

logger = logging.getLogger(__name__)

# Portas baratas que respondem na maioria dos hosts; usadas para decidir se o IP está vivo.
PORTAS_VIVACIDADE = [80, 443, 22, 135, 445, 9100, 554]

# Verificação leve de status (worker)
PORTAS_STATUS = [80, 443, 22]

PORTAS_FINGERPRINT = [
    21, 22, 23, 25, 53, 80, 110,    # FTP, SSH, Telnet, SMTP, DNS, HTTP, POP3
    135, 139, 143, 161, 443, 445,   # RPC, NetBIOS, IMAP, SNMP, HTTPS, SMB
    515, 631, 9100, 10001, 10002,   # impressão (LPD, IPP, RAW, fiscais)
    554,                            # RTSP / câmeras
    3306, 5432,                     # bancos de dados
    3389,                           # RDP
    8080,                           # administração web alternativa
]


async def probe_port(ip: str, port: int, timeout_ms: int = 1000) -> bool:
    """
    Uma única tentativa de conexão TCP. True se conectou (a conexão é fechada
    na hora, nada é enviado nem lido); False em erro ou timeout. Nunca levanta.
    """
    writer = None
    try:
        _, writer = await asyncio.wait_for(
            asyncio.open_connection(ip, port),
            timeout=timeout_ms / 1000.0,
        )
        return True
    except (OSError, asyncio.TimeoutError, ValueError):
        return False
    finally:
        if writer is not None:
            writer.close()
            try:
                await writer.wait_closed()
            except OSError:
                pass


async def escanear_portas(ip: str, portas: Iterable[int], timeout_ms: int = 1000) -> List[int]:
    """Testa todas as portas em paralelo e retorna as abertas, ordenadas."""
    portas = sorted(set(int(p) for p in portas))
    if not portas:
        return []
    resultados = await asyncio.gather(*(probe_port(ip, p, timeout_ms) for p in portas))
    abertas = [p for p, aberta in zip(portas, resultados) if aberta]
    if abertas:
        logger.debug(f"Portas abertas em {ip}: {abertas}")
    return abertas


async def host_ativo(ip: str, portas: Iterable[int] = PORTAS_STATUS, timeout_ms: int = 2000) -> bool:
    return bool(await escanear_portas(ip, portas, timeout_ms))
