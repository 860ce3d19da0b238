#!/usr/bin/env python3
"""
Chaos VFS API
Flask application exposing the virtual file system over HTTP

Every /api route except login requires the shared key. Handlers stay thin:
parse the request, call VFSService, wrap the result with the request id.
Errors raised as VFSError subclasses are turned into JSON by the handlers
registered in create_app.
"""
import random
import uuid
from datetime import datetime
from typing import Callable, Optional
from urllib.parse import quote

from flask import Blueprint, Flask, Response, current_app, g, jsonify, request
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from chaos_vfs import __version__, messages
from chaos_vfs.auth import get_auth, init_security, require_api_key
from chaos_vfs.chaos.graveyard import RespawnPolicy
from chaos_vfs.config import get_config
from chaos_vfs.datashapes import to_iso, utc_now
from chaos_vfs.errors import Unauthorized, ValidationError, VFSError
from chaos_vfs.error_logging import api_logger, auth_logger, ErrorCodes
from chaos_vfs.service import CONTROL_CHARS, VFSService
from chaos_vfs.storage import ObjectStore, create_object_store
from chaos_vfs.worker import ChaosScheduler

DEFAULT_MIME_TYPE = 'application/octet-stream'

vfs_api = Blueprint('vfs', __name__)

limiter = Limiter(key_func=get_remote_address)


def get_service() -> VFSService:
    return current_app.extensions['chaos_vfs']


def respond(payload=None, status: int = 200, **fields):
    body = dict(payload or {})
    body.update(fields)
    body.setdefault('status', 'success')
    body['request_id'] = g.request_id
    return jsonify(body), status


def json_body() -> dict:
    """Request JSON that must be an object; anything else is a ValidationError"""
    data = request.get_json(silent=True)
    if data is None:
        return {}
    if not isinstance(data, dict):
        raise ValidationError("JSON body must be an object")
    return data


def content_disposition(filename: str) -> str:
    """attachment header that survives non-latin-1 (drifted) names"""
    fallback = filename.encode('ascii', 'replace').decode('ascii').replace('"', "'")
    fallback = CONTROL_CHARS.sub('_', fallback)
    return f"attachment; filename=\"{fallback}\"; filename*=UTF-8''{quote(filename)}"


# =============================================================================
# AUTH
# =============================================================================

@vfs_api.route('/api/login', methods=['POST'])
@limiter.limit(lambda: current_app.config['LOGIN_RATE_LIMIT'])
def login():
    """Check a presented key; accepts raw text or {"api_key": ...}"""
    if request.is_json:
        presented = json_body().get('api_key')
    else:
        presented = request.get_data(as_text=True)

    presented = presented.strip() if isinstance(presented, str) else ''
    if not presented:
        raise ValidationError("API key required")

    if not get_auth().verify(presented):
        auth_logger.log_warning(ErrorCodes.AUTH_INVALID_KEY, f"Failed login from {request.remote_addr}")
        raise Unauthorized("Invalid API key")

    auth_logger.log_info(ErrorCodes.AUTH_LOGIN, f"Successful login from {request.remote_addr}")
    return respond(success=True)


# =============================================================================
# FILES
# =============================================================================

@vfs_api.route('/api/files', methods=['GET'])
@require_api_key
def list_files():
    return respond(get_service().list_files(request.args.get('parent_id') or None))


@vfs_api.route('/api/files', methods=['POST'])
@require_api_key
def upload_file():
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError("No file provided")

    entry = get_service().upload_file(
        filename=upload.filename,
        content=upload.read(),
        mime_type=upload.mimetype or None,
        parent_id=request.form.get('parent_id') or None,
    )
    return respond(entry=entry.to_dict(), status=201)


@vfs_api.route('/api/files/search', methods=['POST'])
@require_api_key
def search_files():
    data = json_body()
    return respond(get_service().search(data.get('query')))


@vfs_api.route('/api/files/<entry_id>', methods=['GET'])
@require_api_key
def get_file(entry_id):
    return respond(entry=get_service().get_file(entry_id).to_dict())


@vfs_api.route('/api/files/<entry_id>', methods=['PUT'])
@vfs_api.route('/api/files/<entry_id>/rename', methods=['PUT'])
@require_api_key
def rename_file(entry_id):
    data = json_body()
    kwargs = {}
    if 'parent_id' in data:
        kwargs['parent_id'] = data['parent_id']
    return respond(get_service().rename_file(entry_id, data.get('name'), **kwargs))


@vfs_api.route('/api/files/<entry_id>', methods=['DELETE'])
@require_api_key
def delete_file(entry_id):
    return respond(get_service().delete_file(entry_id))


@vfs_api.route('/api/files/<entry_id>/content', methods=['GET'])
@require_api_key
def download_file(entry_id):
    result = get_service().download(entry_id)
    entry = result['entry']
    return Response(
        result['content'],
        mimetype=entry.mime_type or DEFAULT_MIME_TYPE,
        headers={
            'Content-Disposition': content_disposition(entry.name),
            'X-Quantum-State': result['state'],
            'X-Quantum-Superposition': 'true' if result['superposition'] else 'false',
        }
    )


# =============================================================================
# FOLDERS / TREE
# =============================================================================

@vfs_api.route('/api/folders', methods=['POST'])
@require_api_key
def create_folder():
    data = json_body()
    folder = get_service().create_folder(data.get('name'), data.get('parent_id') or None)
    return respond(entry=folder.to_dict(), status=201)


@vfs_api.route('/api/folders/<folder_id>', methods=['DELETE'])
@require_api_key
def delete_folder(folder_id):
    return respond(get_service().delete_folder(folder_id))


@vfs_api.route('/api/tree', methods=['GET'])
@require_api_key
def get_tree():
    return respond(tree=get_service().tree())


# =============================================================================
# ESCALATION / CHAOS
# =============================================================================

@vfs_api.route('/api/escalation', methods=['GET'])
@require_api_key
def get_escalation():
    return respond(get_service().get_escalation())


@vfs_api.route('/api/escalation', methods=['POST'])
@require_api_key
def update_escalation():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("JSON body required")
    return respond(get_service().update_escalation(
        interactions=data.get('interactions'),
        increment=data.get('increment'),
    ))


@vfs_api.route('/api/chaos-worker', methods=['POST'])
@require_api_key
def run_chaos_worker():
    return respond(report=get_service().run_worker())


@vfs_api.route('/api/respawn-check', methods=['GET'])
@require_api_key
def respawn_check():
    return respond(get_service().respawn_check())


@vfs_api.route('/health', methods=['GET'])
def health_check():
    """Health check endpoint"""
    return jsonify({
        "status": "healthy",
        "service": current_app.config['NAME'],
        "version": __version__,
        "storage_backend": current_app.config['STORAGE_BACKEND'],
        "timestamp": to_iso(utc_now()),
        "request_id": g.request_id
    })


# =============================================================================
# APP FACTORY
# =============================================================================

def _register_error_handlers(app: Flask):

    def error_body(message, code, status):
        body = {
            "status": "error",
            "error": message,
            "code": code,
            "request_id": getattr(g, 'request_id', None),
        }
        if status == 404:
            body["message"] = messages.pick('absurd', app.extensions['chaos_vfs'].message_rng)
        return jsonify(body), status

    @app.errorhandler(VFSError)
    def handle_vfs_error(error):
        if error.status_code >= 500:
            api_logger.log_error(ErrorCodes.API_REQUEST_FAILED,
                                 f"{request.method} {request.path} failed (request: {g.request_id}): {error}")
        return error_body(error.message, error.code, error.status_code)

    @app.errorhandler(404)
    def not_found(error):
        return error_body("Not found", "NOT_FOUND", 404)

    @app.errorhandler(405)
    def method_not_allowed(error):
        return error_body("Method not allowed", "METHOD_NOT_ALLOWED", 405)

    @app.errorhandler(Exception)
    def handle_unexpected(error):
        if isinstance(error, HTTPException):
            return error
        api_logger.log_error(ErrorCodes.API_REQUEST_FAILED,
                             f"Unhandled error in {request.method} {request.path} "
                             f"(request: {getattr(g, 'request_id', None)}): {error}", exc_info=True)
        return error_body("Internal server error", "INTERNAL_ERROR", 500)


def create_app(config=None, store: Optional[ObjectStore] = None, rng: Optional[random.Random] = None,
               clock: Optional[Callable[[], datetime]] = None,
               respawn_policy: Optional[RespawnPolicy] = None) -> Flask:
    """
    Build an isolated app. Each app owns its store, service, rng and clock.
    The scheduler is created but only started by run_server().
    """
    config = config or get_config()
    app = Flask(__name__)
    app.config.from_object(config)

    chaos_config = config.CHAOS
    service = VFSService(
        store if store is not None else create_object_store(config),
        chaos_config=chaos_config,
        rng=rng,
        clock=clock,
        respawn_policy=respawn_policy,
        concurrent_worker=not config.TESTING,
    )
    app.extensions['chaos_vfs'] = service
    app.extensions['chaos_vfs_scheduler'] = ChaosScheduler(service.worker, chaos_config.worker_interval_seconds)

    # Request ID middleware
    @app.before_request
    def before_request():
        g.request_id = str(uuid.uuid4())
        g.start_time = datetime.utcnow()

    @app.after_request
    def after_request(response):
        duration = (datetime.utcnow() - g.start_time).total_seconds()
        api_logger.log_info(ErrorCodes.API_REQUEST_COMPLETE,
                            f"REQUEST_COMPLETED: {request.method} {request.path} - "
                            f"{response.status_code} - {duration:.3f}s")
        return response

    init_security(app, config.API_KEY)

    @app.before_request
    def answer_preflight():
        if request.method == 'OPTIONS' and request.path.startswith('/api/'):
            return '', 204

    limiter.init_app(app)
    app.register_blueprint(vfs_api)
    _register_error_handlers(app)

    return app


def run_server(config=None):
    """Run the API with the maintenance scheduler alongside it"""
    config = config or get_config()
    app = create_app(config)

    issues = config.validate_config()
    for issue in issues:
        api_logger.log_warning(ErrorCodes.API_REQUEST_FAILED, f"Configuration issue: {issue}")

    scheduler = app.extensions['chaos_vfs_scheduler']
    if config.WORKER_ENABLED:
        scheduler.start()

    try:
        app.run(host=config.HOST, port=config.PORT, debug=config.DEBUG, threaded=True, use_reloader=False)
    finally:
        if config.WORKER_ENABLED:
            scheduler.stop()
