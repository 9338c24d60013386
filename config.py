# /config.py
import os

from dotenv import load_dotenv

load_dotenv()

# Caminho base do projeto
basedir = os.path.abspath(os.path.dirname(__file__))
db_path = os.path.join(basedir, "superips", "db")
os.makedirs(db_path, exist_ok=True)


def _bool_env(nome: str, padrao: bool) -> bool:
    valor = os.environ.get(nome)
    if valor is None:
        return padrao
    return valor.strip().lower() in ("1", "true", "yes", "sim", "on")


class Config:
    SECRET_KEY = os.environ.get('SECRET_KEY') or "uma_chave_muito_dificil_de_adivinhar"
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    SQLALCHEMY_DATABASE_URI = os.environ.get('DATABASE_URL') or \
        f"sqlite:///{os.path.join(db_path, 'app.db')}"

    # Faixas de rede varridas pela descoberta (YAML). NETWORK_RANGES tem prioridade se definido.
    NETWORK_RANGES_FILE = os.environ.get('NETWORK_RANGES_FILE') or \
        os.path.join(basedir, "superips", "data", "redes.yaml")
    NETWORK_RANGES = None

    # Descoberta
    DISCOVERY_BATCH_DELAY = float(os.environ.get('DISCOVERY_BATCH_DELAY', 1.0))  # segundos
    DNS_TIMEOUT = float(os.environ.get('DNS_TIMEOUT', 2.0))
    ARP_TIMEOUT = float(os.environ.get('ARP_TIMEOUT', 4.0))
    NETBIOS_TIMEOUT = float(os.environ.get('NETBIOS_TIMEOUT', 6.0))
    SNMP_COMMUNITY = os.environ.get('SNMP_COMMUNITY', 'public')
    SNMP_TIMEOUT = float(os.environ.get('SNMP_TIMEOUT', 2.0))

    SCHEDULER_ENABLED = _bool_env('SCHEDULER_ENABLED', True)
    EVENT_QUEUE_SIZE = int(os.environ.get('EVENT_QUEUE_SIZE', 200))
    LOG_LEVEL = os.environ.get('LOG_LEVEL', 'INFO')


class TestingConfig(Config):
    TESTING = True
    SQLALCHEMY_DATABASE_URI = "sqlite:///:memory:"
    NETWORK_RANGES = []
    DISCOVERY_BATCH_DELAY = 0
    SCHEDULER_ENABLED = False
