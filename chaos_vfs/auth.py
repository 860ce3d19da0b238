#!/usr/bin/env python3
"""
Authentication and security for the Chaos VFS API
Single shared key, checked on every /api route except login
"""
import hmac
from functools import wraps
from typing import Optional

from flask import current_app, g, jsonify, request
from flask_talisman import Talisman

from chaos_vfs.errors import ConfigurationError, Unauthorized
from chaos_vfs.error_logging import auth_logger, ErrorCodes

CSP = {
    'default-src': "'none'",
    'frame-ancestors': "'none'",
}


class VFSAuth:
    """Validates the shared API key presented by clients"""

    def __init__(self, api_key: Optional[str]):
        self.api_key = api_key

    @staticmethod
    def extract_key(req) -> Optional[str]:
        """Key from ?api_key= or an Authorization: Bearer header"""
        key = req.args.get('api_key')
        if key:
            return key
        header = req.headers.get('Authorization', '')
        if header.lower().startswith('bearer '):
            return header[7:].strip() or None
        return None

    def verify(self, presented: Optional[str]) -> bool:
        if not self.api_key:
            auth_logger.log_error(ErrorCodes.AUTH_NOT_CONFIGURED, "VFS_API_KEY is not configured")
            raise ConfigurationError("API key not configured")
        if not presented:
            return False
        # Constant-time comparison
        return hmac.compare_digest(presented.encode('utf-8'), self.api_key.encode('utf-8'))

    def check_request(self, req):
        """Raise Unauthorized unless the request carries the right key"""
        presented = self.extract_key(req)
        if not presented:
            auth_logger.log_warning(ErrorCodes.AUTH_MISSING_KEY,
                                    f"No API key on {req.method} {req.path} from {req.remote_addr}")
            raise Unauthorized("Authentication required")
        if not self.verify(presented):
            auth_logger.log_warning(ErrorCodes.AUTH_INVALID_KEY,
                                    f"Invalid API key on {req.method} {req.path} from {req.remote_addr}")
            raise Unauthorized("Invalid API key")


def get_auth() -> VFSAuth:
    return current_app.extensions['chaos_vfs_auth']


def require_api_key(f):
    """Decorator to require the shared key on VFS endpoints"""
    @wraps(f)
    def decorated_function(*args, **kwargs):
        get_auth().check_request(request)
        return f(*args, **kwargs)

    return decorated_function


def init_security(app, api_key: Optional[str]):
    """Attach the key checker, security headers and CORS to the app"""
    app.extensions['chaos_vfs_auth'] = VFSAuth(api_key)

    Talisman(
        app,
        content_security_policy=CSP,
        force_https=False,
        strict_transport_security=False,
        session_cookie_secure=False,
    )

    @app.after_request
    def add_cors_headers(response):
        response.headers['Access-Control-Allow-Origin'] = '*'
        response.headers['Access-Control-Allow-Headers'] = 'Content-Type,Authorization'
        response.headers['Access-Control-Allow-Methods'] = 'GET,PUT,POST,DELETE,OPTIONS'
        response.headers['Access-Control-Expose-Headers'] = \
            'Content-Disposition,X-Quantum-State,X-Quantum-Superposition'
        return response

    @app.errorhandler(429)
    def rate_limited(error):
        auth_logger.log_warning(ErrorCodes.AUTH_RATE_LIMITED, f"429 error: {error}")
        return jsonify({
            'status': 'error',
            'error': 'Rate limit exceeded',
            'code': 'RATE_LIMITED',
            'request_id': getattr(g, 'request_id', None)
        }), 429

    auth_logger.log_info(ErrorCodes.AUTH_INITIALIZED, "VFS security initialized",
                         {'key_configured': bool(api_key)})
    return app
