#!/usr/bin/env python3
"""
VFS Client
requests-based client for the Chaos VFS HTTP API

Every call sends the shared key as the api_key query parameter. Any non-2xx
response raises VFSClientError with the status and the server's message.
"""
import os
from typing import Any, Dict, List, Optional

import requests


class VFSClientError(Exception):
    """A failed API call"""

    def __init__(self, message: str, status_code: Optional[int] = None, code: Optional[str] = None):
        super().__init__(message)
        self.message = message
        self.status_code = status_code
        self.code = code

    def __str__(self):
        if self.status_code:
            return f"[{self.status_code}] {self.message}"
        return self.message


class VFSClient:
    """Thin wrapper around the /api routes"""

    def __init__(self, base_url: Optional[str] = None, api_key: Optional[str] = None,
                 timeout: float = 10.0, session: Optional[requests.Session] = None):
        self.base_url = (base_url or os.getenv('VFS_URL', 'http://localhost:8010')).rstrip('/')
        self.api_key = api_key if api_key is not None else os.getenv('VFS_API_KEY')
        self.timeout = timeout
        self.session = session or requests.Session()

    # =========================================================================
    # TRANSPORT
    # =========================================================================

    def _request(self, method: str, path: str, params: Optional[Dict] = None,
                 auth: bool = True, **kwargs) -> requests.Response:
        params = dict(params or {})
        if auth and self.api_key:
            params['api_key'] = self.api_key

        try:
            response = self.session.request(method, f"{self.base_url}{path}", params=params,
                                            timeout=self.timeout, **kwargs)
        except requests.RequestException as e:
            raise VFSClientError(f"Could not reach {self.base_url}: {e}") from e

        if not response.ok:
            message, code = response.reason or 'Request failed', None
            try:
                body = response.json()
                message = body.get('error') or message
                code = body.get('code')
            except ValueError:
                pass
            raise VFSClientError(message, status_code=response.status_code, code=code)

        return response

    def _json(self, method: str, path: str, **kwargs) -> Dict[str, Any]:
        return self._request(method, path, **kwargs).json()

    # =========================================================================
    # API
    # =========================================================================

    def health(self) -> Dict[str, Any]:
        return self._json('GET', '/health', auth=False)

    def login(self, api_key: Optional[str] = None) -> bool:
        key = api_key or self.api_key or ''
        result = self._json('POST', '/api/login', auth=False, json={'api_key': key})
        return bool(result.get('success'))

    def get_escalation(self) -> Dict[str, Any]:
        return self._json('GET', '/api/escalation')

    def update_escalation(self, interactions: Optional[int] = None,
                          increment: Optional[int] = None) -> Dict[str, Any]:
        body = {}
        if interactions is not None:
            body['interactions'] = interactions
        if increment is not None:
            body['increment'] = increment
        return self._json('POST', '/api/escalation', json=body)

    def list_files(self, parent_id: Optional[str] = None) -> Dict[str, Any]:
        params = {'parent_id': parent_id} if parent_id else None
        return self._json('GET', '/api/files', params=params)

    def get_file(self, entry_id: str) -> Dict[str, Any]:
        return self._json('GET', f'/api/files/{entry_id}')['entry']

    def upload_file(self, filename: str, content: bytes, mime_type: Optional[str] = None,
                    parent_id: Optional[str] = None) -> Dict[str, Any]:
        file_tuple = (filename, content, mime_type) if mime_type else (filename, content)
        data = {'parent_id': parent_id} if parent_id else None
        return self._json('POST', '/api/files', files={'file': file_tuple}, data=data)['entry']

    def download_file(self, entry_id: str) -> Dict[str, Any]:
        """Returns content plus the quantum state the server collapsed to"""
        response = self._request('GET', f'/api/files/{entry_id}/content')
        return {
            'content': response.content,
            'mime_type': response.headers.get('Content-Type'),
            'state': response.headers.get('X-Quantum-State', 'primary'),
            'superposition': response.headers.get('X-Quantum-Superposition') == 'true',
        }

    def rename_file(self, entry_id: str, name: str, parent_id: Optional[str] = None) -> Dict[str, Any]:
        body = {'name': name}
        if parent_id is not None:
            body['parent_id'] = parent_id
        return self._json('PUT', f'/api/files/{entry_id}/rename', json=body)

    def delete_file(self, entry_id: str) -> Dict[str, Any]:
        return self._json('DELETE', f'/api/files/{entry_id}')

    def create_folder(self, name: str, parent_id: Optional[str] = None) -> Dict[str, Any]:
        return self._json('POST', '/api/folders', json={'name': name, 'parent_id': parent_id})['entry']

    def delete_folder(self, folder_id: str) -> Dict[str, Any]:
        return self._json('DELETE', f'/api/folders/{folder_id}')

    def search_files(self, query: str) -> Dict[str, Any]:
        return self._json('POST', '/api/files/search', json={'query': query})

    def tree(self) -> List[Dict[str, Any]]:
        return self._json('GET', '/api/tree')['tree']

    def check_respawns(self) -> Dict[str, Any]:
        return self._json('GET', '/api/respawn-check')

    def run_worker(self) -> Dict[str, Any]:
        return self._json('POST', '/api/chaos-worker')['report']
