# superips/controllers/discovery_controller.py
from concurrent.futures import TimeoutError as FutureTimeoutError

from flask import jsonify, current_app
import logging

from superips.models.Device import TABELAS
from superips.services.discovery_service import discovery_service
from superips.services.settings_service import carregar_configuracoes
from superips.services.status_worker import StatusWorker
from superips.utils.async_runner import get_async_loop

logger = logging.getLogger(__name__)

TIMEOUT_VERIFICACAO = 60  # segundos


def _ja_em_execucao():
    return jsonify({
        'success': False,
        'message': 'Descoberta já está em andamento',
        'status': discovery_service.obter_status(),
    }), 409


def start_sweep():
    """
    Varredura das faixas configuradas (novos dispositivos)
    POST /api/discovery/sweep
    """
    if not discovery_service.iniciar_varredura():
        return _ja_em_execucao()
    logger.info("Varredura de rede iniciada via API")
    return jsonify({
        'success': True,
        'message': 'Varredura iniciada',
        'status': discovery_service.obter_status(),
    }), 202


def start_enhanced():
    """
    Descoberta avançada sobre os dispositivos cadastrados
    POST /api/discovery/enhanced
    """
    if not discovery_service.iniciar_descoberta_avancada():
        return _ja_em_execucao()
    logger.info("Descoberta avançada iniciada via API")
    return jsonify({
        'success': True,
        'message': 'Descoberta avançada iniciada',
        'status': discovery_service.obter_status(),
    }), 202


def get_status():
    """GET /api/discovery/status"""
    return jsonify({'success': True, 'status': discovery_service.obter_status()}), 200


def refresh_status():
    """
    Verificação de status de todos os dispositivos em thread separada
    POST /api/devices/status/refresh
    """
    configuracoes = carregar_configuracoes()
    worker = StatusWorker(
        current_app.config['SQLALCHEMY_DATABASE_URI'],
        event_bus=discovery_service.event_bus,
        timeout_ms=configuracoes.ping_timeout,
    )
    worker.iniciar()
    return jsonify({'success': True, 'message': 'Verificação de status iniciada'}), 202


def check_device(table, device_id):
    """
    Atualização imediata de um dispositivo
    POST /api/devices/<table>/<id>/check
    """
    if table not in TABELAS:
        return jsonify({'success': False, 'message': f'Tabela inválida: {table}'}), 400

    future = get_async_loop().run_coro(discovery_service.verificar_dispositivo(table, device_id))
    try:
        device = future.result(timeout=TIMEOUT_VERIFICACAO)
    except FutureTimeoutError:
        future.cancel()
        logger.error(f"Verificação de {table}/{device_id} excedeu {TIMEOUT_VERIFICACAO}s")
        return jsonify({'success': False, 'message': 'Tempo esgotado na verificação'}), 504

    if not device:
        return jsonify({'success': False, 'message': 'Dispositivo não encontrado'}), 404
    return jsonify({'success': True, 'device': device}), 200


# Rotas para blueprint
def setup_discovery_routes(bp):
    """Configura as rotas de descoberta no blueprint"""

    @bp.route('/discovery/sweep', methods=['POST'])
    def discovery_sweep():
        return start_sweep()

    @bp.route('/discovery/enhanced', methods=['POST'])
    def discovery_enhanced():
        return start_enhanced()

    @bp.route('/discovery/status', methods=['GET'])
    def discovery_status():
        return get_status()

    @bp.route('/devices/status/refresh', methods=['POST'])
    def devices_status_refresh():
        return refresh_status()

    @bp.route('/devices/<table>/<int:device_id>/check', methods=['POST'])
    def device_check(table, device_id):
        return check_device(table, device_id)
