# run.py
import logging
import os

from superips.app import create_app
from superips.services.discovery_service import discovery_service
from superips.services.scheduler import DiscoveryScheduler

logger = logging.getLogger(__name__)

host = os.environ.get("SUPERIPS_HOST", "0.0.0.0")
port = int(os.environ.get("SUPERIPS_PORT", 5000))

if __name__ == '__main__':
    app = create_app()

    if app.config.get("SCHEDULER_ENABLED"):
        scheduler = DiscoveryScheduler(app, discovery_service)
        fut = scheduler.iniciar()
        logger.info("Agendador de descoberta agendado: %s", fut)
    else:
        logger.info("Agendador desabilitado (SCHEDULER_ENABLED=false)")

    # use_reloader=False evita duplicar processos (e o agendador)
    app.run(host=host, port=port, debug=False, use_reloader=False, threaded=True)
