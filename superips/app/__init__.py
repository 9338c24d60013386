import logging

from flask import Flask
from flask_migrate import Migrate
from sqlalchemy.exc import SQLAlchemyError

from config import Config
from superips.db import db
from superips.services.discovery_service import discovery_service
from superips.services.event_bus import event_bus
from superips.services.settings_service import garantir_configuracoes_padrao
from superips.utils.log.log import setup_logger

logger = logging.getLogger(__name__)

migrate = Migrate()


def create_app(config_class=Config):
    app = Flask(__name__)
    app.config.from_object(config_class)

    setup_logger(app.config.get('LOG_LEVEL', 'INFO'))

    db.init_app(app)
    migrate.init_app(app, db)

    event_bus.capacidade = int(app.config.get('EVENT_QUEUE_SIZE', 200))

    # Sem banco não há modo degradado: falha aqui derruba a aplicação
    with app.app_context():
        from superips.models import Device, Vlan, PingHistory, Setting  # noqa: F401
        try:
            db.create_all()
        except SQLAlchemyError:
            logger.critical("Falha ao criar o schema do banco", exc_info=True)
            raise
        criados = garantir_configuracoes_padrao()
        if criados:
            logger.info(f"{criados} configurações padrão gravadas")

    discovery_service.init_app(app, event_bus)

    # Blueprints
    from superips.views.routes.api_routes import api_bp
    app.register_blueprint(api_bp)

    return app
