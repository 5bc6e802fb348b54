"""Admin HTTP endpoints: pairing-code retrieval and decommissioning."""

import logging
from typing import Optional

from flask import Blueprint, Flask, current_app, jsonify, request

from hearth_nodes import (
    AggregatorNode,
    CommissionableNode,
    DeviceNode,
    FlowRuntime,
    PairingUnavailableError,
)

logger = logging.getLogger(__name__)

admin_bp = Blueprint("hearth_admin", __name__)

NODE_KINDS = {
    "device": DeviceNode,
    "aggregator": AggregatorNode,
}


def _runtime() -> FlowRuntime:
    return current_app.config["HEARTH_RUNTIME"]


def _find_node(kind: str, node_id: Optional[str]) -> Optional[CommissionableNode]:
    """Node of the given kind owning its own endpoint, or None."""
    node_class = NODE_KINDS.get(kind)
    if node_class is None:
        return None
    node = _runtime().get_node(node_id)
    if not isinstance(node, node_class) or node.endpoint is None:
        return None
    return node


def _not_found(kind: str, node_id: Optional[str]):
    return jsonify({"ok": False, "error": f"{kind.capitalize()} '{node_id}' not found"}), 404


@admin_bp.route("/hearth/<kind>/pairingcode", methods=["GET"])
def get_pairing_code(kind: str):
    """Pairing data of a standalone device or an aggregator.

    Query params:
        device-id: Node id
    """
    node_id = request.args.get("device-id")
    node = _find_node(kind, node_id)
    if node is None:
        return _not_found(kind, node_id)

    info = node.current_pairing_info()
    if info is None:
        return jsonify({"commissioned": False, "qrcode": None, "manualPairingCode": None})
    return jsonify(info.to_dict())


@admin_bp.route("/hearth/<kind>/decommission", methods=["POST"])
def post_decommission(kind: str):
    """Forget every paired fabric of a started device or aggregator.

    Query params:
        device-id: Node id
    """
    node_id = request.args.get("device-id")
    node = _find_node(kind, node_id)
    if node is None:
        return _not_found(kind, node_id)

    try:
        info = node.decommission()
    except PairingUnavailableError as e:
        return jsonify({"ok": False, "error": str(e)}), 409

    logger.info(f"🧹 {node_id} decommissioned via admin API")
    return jsonify({"ok": True, **info.to_dict()})


@admin_bp.route("/hearth/nodes", methods=["GET"])
def list_nodes():
    runtime = _runtime()
    return jsonify({
        "ok": True,
        "nodes": [node.describe() for node in runtime.nodes],
        "failed": runtime.failed_nodes,
    })


def create_app(runtime: FlowRuntime) -> Flask:
    """Flask app serving the admin endpoints of `runtime`."""
    app = Flask("hearth_http")
    app.config["HEARTH_RUNTIME"] = runtime
    app.register_blueprint(admin_bp)
    return app
