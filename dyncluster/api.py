from __future__ import annotations

import re
import logging
from datetime import timedelta
from typing import Any, Dict

from flask import Flask, jsonify, request

from dyncluster import __version__
from dyncluster.clusters import ClusterManager
from dyncluster.context import RequestContext
from dyncluster.errors import DynclusterError, Forbidden, InvalidRequest, NotFound
from dyncluster.state import ClusterOptions, NodeOptions

logger = logging.getLogger(__name__)

USER_HEADER = "X-Dyncluster-User"
ADMIN_HEADER = "X-Dyncluster-Admin"

_DURATION_PART = re.compile(r"(\d+(?:\.\d+)?)(h|ms|m|s)")
_DURATION_UNITS = {"h": 3600.0, "m": 60.0, "s": 1.0, "ms": 0.001}


def _seconds(seconds: float, value: Any) -> timedelta:
	try:
		return timedelta(seconds=seconds)
	except (OverflowError, ValueError) as e:
		raise InvalidRequest(f"duration out of range: {value!r}") from e


def parse_duration(value: Any) -> timedelta:
	"""Parse seconds or a duration string such as ``1h30m`` or ``45s``."""
	if isinstance(value, bool):
		raise InvalidRequest(f"invalid duration: {value!r}")
	if isinstance(value, (int, float)):
		return _seconds(value, value)
	text = str(value).strip()
	if not text:
		raise InvalidRequest("missing duration")
	sign = 1
	if text[0] in "+-":
		sign = -1 if text[0] == "-" else 1
		text = text[1:]
	if text.isdigit():
		return _seconds(sign * int(text), value)
	pos = 0
	total = 0.0
	for match in _DURATION_PART.finditer(text):
		if match.start() != pos:
			break
		total += float(match.group(1)) * _DURATION_UNITS[match.group(2)]
		pos = match.end()
	if pos == 0 or pos != len(text):
		raise InvalidRequest(f"invalid duration: {value!r}")
	return _seconds(sign * total, value)


def _status_for(error: DynclusterError) -> int:
	if isinstance(error, InvalidRequest):
		return 400
	if isinstance(error, Forbidden):
		return 403
	if isinstance(error, NotFound):
		return 404
	return 500


class _Unauthenticated(Exception):
	pass


def _request_context() -> RequestContext:
	user = request.headers.get(USER_HEADER, "").strip()
	if not user:
		raise _Unauthenticated()
	admin = request.headers.get(ADMIN_HEADER, "").strip().lower() in ("1", "true", "yes")
	return RequestContext(user=user, ignore_ownership=admin)


def _cluster_options_from_dict(body: Dict[str, Any]) -> ClusterOptions:
	"""Parse an allocation request body."""
	if "timeout" not in body:
		raise InvalidRequest("missing timeout")
	nodes = []
	for node_spec in body.get("nodes") or []:
		if not isinstance(node_spec, dict):
			raise InvalidRequest("node entries must be objects")
		nodes.append(NodeOptions(
			name=str(node_spec.get("name", "")),
			platform=str(node_spec.get("platform", "centos7")),
			server_version=str(node_spec.get("server_version", "")),
		))
	return ClusterOptions(timeout=parse_duration(body["timeout"]), nodes=nodes)


def create_app(cluster_manager: ClusterManager) -> Flask:
	app = Flask(__name__)
	app.config['cluster_manager'] = cluster_manager

	@app.errorhandler(DynclusterError)
	def handle_error(error: DynclusterError) -> Any:
		status = _status_for(error)
		if status == 500:
			logger.error(f"{request.method} {request.path} failed: {error}")
		return jsonify({"error": str(error)}), status

	@app.errorhandler(_Unauthenticated)
	def handle_unauthenticated(error: _Unauthenticated) -> Any:
		return jsonify({"error": f"missing {USER_HEADER} header"}), 401

	@app.get("/version")
	def version() -> Any:
		return jsonify({"version": __version__})

	@app.get("/clusters")
	def list_clusters() -> Any:
		ctx = _request_context()
		clusters = cluster_manager.get_all_clusters(ctx)
		return jsonify([cluster.to_dict() for cluster in clusters])

	@app.post("/clusters")
	def create_cluster() -> Any:
		ctx = _request_context()
		body = request.get_json(silent=True)
		if not isinstance(body, dict):
			return jsonify({"error": "request body must be a JSON object"}), 400
		opts = _cluster_options_from_dict(body)
		cluster_id = cluster_manager.allocate_cluster(ctx, opts)
		return jsonify({"id": cluster_id})

	@app.delete("/clusters")
	def kill_all_clusters() -> Any:
		ctx = _request_context()
		cluster_manager.kill_all_clusters(ctx)
		return jsonify({"status": "ok"})

	@app.get("/cluster/<cluster_id>")
	def get_cluster(cluster_id: str) -> Any:
		ctx = _request_context()
		return jsonify(cluster_manager.get_cluster(ctx, cluster_id).to_dict())

	@app.put("/cluster/<cluster_id>")
	def refresh_cluster(cluster_id: str) -> Any:
		ctx = _request_context()
		body = request.get_json(silent=True)
		if not isinstance(body, dict) or "timeout" not in body:
			return jsonify({"error": "missing timeout"}), 400
		meta = cluster_manager.refresh_cluster(ctx, cluster_id, parse_duration(body["timeout"]))
		return jsonify(meta.to_dict())

	@app.delete("/cluster/<cluster_id>")
	def kill_cluster(cluster_id: str) -> Any:
		ctx = _request_context()
		cluster_manager.kill_cluster(ctx, cluster_id)
		return jsonify({"status": "ok"})

	return app
