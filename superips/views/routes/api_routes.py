# superips/views/routes/api_routes.py
from datetime import datetime, timezone
import ipaddress
import logging

from flask import Blueprint, Response, jsonify, request
import psutil

from superips import __version__
from superips.controllers.discovery_controller import setup_discovery_routes
from superips.models.Device import Device, Vlan
from superips.repositories.device_repository import CAMPOS_CADASTRO, DeviceRepository
from superips.repositories.ping_history_repository import PingHistoryRepository
from superips.services.discovery_service import discovery_service
from superips.services.event_bus import event_bus
from superips.services.settings_service import atualizar_configuracoes, carregar_configuracoes

logger = logging.getLogger(__name__)

api_bp = Blueprint("api", __name__, url_prefix="/api")


# -------------------------
# Consultas
# -------------------------
@api_bp.route("/devices", methods=["GET"])
def list_devices():
    return jsonify(DeviceRepository(Device).listar())


@api_bp.route("/vlan", methods=["GET"])
def list_vlan():
    return jsonify(DeviceRepository(Vlan).listar())


@api_bp.route("/routers", methods=["GET"])
def list_routers():
    return jsonify(DeviceRepository(Device).listar_por_tipo("Roteador"))


@api_bp.route("/printers", methods=["GET"])
def list_printers():
    """Impressoras agrupadas por setor."""
    return jsonify(DeviceRepository(Device).listar_por_tipo("Impressora", por_setor=True))


@api_bp.route("/boxes", methods=["GET"])
def list_boxes():
    """Caixas (PDVs e impressoras fiscais) do setor Caixas."""
    return jsonify(DeviceRepository(Device).listar_por_setor("Caixas"))


@api_bp.route("/devices/<int:device_id>/history", methods=["GET"])
def device_history(device_id):
    limite = request.args.get("limit", default=100, type=int)
    if DeviceRepository(Device).buscar_por_id(device_id) is None:
        return jsonify({"success": False, "message": "Dispositivo não encontrado"}), 404
    return jsonify(PingHistoryRepository().historico(device_id, max(1, min(limite, 1000))))


# -------------------------
# Cadastro manual
# -------------------------
def _dados_cadastro(data, exigir_ip: bool) -> dict:
    """Valida o corpo do cadastro. Chaves fora do cadastro são ignoradas."""
    if not isinstance(data, dict):
        raise ValueError("Corpo JSON obrigatório")
    dados = {k: v for k, v in data.items() if k in CAMPOS_CADASTRO}
    if not dados:
        raise ValueError(f"Nenhum campo válido. Aceitos: {', '.join(CAMPOS_CADASTRO)}")
    if exigir_ip or 'ip' in dados:
        try:
            dados['ip'] = str(ipaddress.IPv4Address(str(dados.get('ip') or '').strip()))
        except ipaddress.AddressValueError:
            raise ValueError(f"IP inválido: {dados.get('ip')!r}")
    if 'hidden' in dados and not isinstance(dados['hidden'], bool):
        raise ValueError("'hidden' deve ser booleano")
    for campo, valor in dados.items():
        if campo != 'hidden' and valor is not None and not isinstance(valor, str):
            raise ValueError(f"'{campo}' deve ser texto")
    return dados


@api_bp.route("/devices", methods=["POST"])
def create_device():
    try:
        dados = _dados_cadastro(request.get_json(silent=True), exigir_ip=True)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    repository = DeviceRepository(Device)
    if repository.buscar_por_ip(dados['ip']):
        return jsonify({"success": False, "message": f"IP {dados['ip']} já cadastrado"}), 409
    device = repository.criar(dados)
    if device is None:
        return jsonify({"success": False, "message": "Erro ao cadastrar dispositivo"}), 500
    return jsonify({"success": True, "device": device}), 201


@api_bp.route("/devices/<int:device_id>", methods=["PUT"])
def update_device(device_id):
    try:
        dados = _dados_cadastro(request.get_json(silent=True), exigir_ip=False)
    except ValueError as e:
        return jsonify({"success": False, "message": str(e)}), 400

    repository = DeviceRepository(Device)
    if repository.buscar_por_id(device_id) is None:
        return jsonify({"success": False, "message": "Dispositivo não encontrado"}), 404
    if 'ip' in dados:
        outro = repository.buscar_por_ip(dados['ip'])
        if outro and outro['id'] != device_id:
            return jsonify({"success": False, "message": f"IP {dados['ip']} já cadastrado"}), 409

    device = repository.atualizar(device_id, dados)
    if device is None:
        return jsonify({"success": False, "message": "Erro ao atualizar dispositivo"}), 500
    return jsonify({"success": True, "device": device}), 200


@api_bp.route("/devices/<int:device_id>", methods=["DELETE"])
def delete_device(device_id):
    if not DeviceRepository(Device).remover(device_id):
        return jsonify({"success": False, "message": "Dispositivo não encontrado"}), 404
    return jsonify({"success": True, "message": "Dispositivo removido"}), 200


# -------------------------
# Configurações
# -------------------------
@api_bp.route("/settings", methods=["GET"])
def get_settings():
    return jsonify(carregar_configuracoes().to_dict())


@api_bp.route("/settings", methods=["PUT"])
def update_settings():
    data = request.get_json(silent=True)
    if not isinstance(data, dict) or not data:
        return jsonify({"success": False, "message": "Corpo JSON obrigatório"}), 400
    try:
        configuracoes = atualizar_configuracoes(data)
    except (TypeError, ValueError) as e:
        return jsonify({"success": False, "message": str(e)}), 400
    return jsonify({"success": True, "settings": configuracoes.to_dict()}), 200


# -------------------------
# Saúde do servidor
# -------------------------
@api_bp.route("/health", methods=["GET"])
def health():
    return jsonify({
        "status": "ok",
        "version": __version__,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    })


@api_bp.route("/server-status", methods=["GET"])
def server_status():
    memoria = psutil.virtual_memory()
    return jsonify({
        "cpu_percent": psutil.cpu_percent(interval=None),
        "memory_percent": memoria.percent,
        "memory_used_mb": round(memoria.used / (1024 * 1024), 1),
        "uptime_seconds": round(datetime.now().timestamp() - psutil.boot_time()),
        "discovery": discovery_service.obter_status(),
    })


# -------------------------
# Eventos em tempo real (SSE)
# -------------------------
@api_bp.route("/events", methods=["GET"])
def events():
    assinatura = event_bus.assinar()
    return Response(
        event_bus.stream(assinatura),
        mimetype="text/event-stream",
        headers={"Cache-Control": "no-cache", "X-Accel-Buffering": "no"},
    )


setup_discovery_routes(api_bp)
