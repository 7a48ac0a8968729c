#!/usr/bin/env python3
"""
AETHER Patch Service - DMX Addressing and Conflict Planning

Standalone Flask service in front of the Aether core. Reads fixtures,
nodes and groups from the core over HTTP, answers conflict, allocation
and node-range questions, and forwards confirmed patch changes.

Run:
    AETHER_CORE_URL=http://pi.local:8891 python3 patch_server.py
"""

from logging.handlers import RotatingFileHandler
import json
import logging
import os

from flask import Flask
from flask_cors import CORS

from core.addressing import CoreApiClient, PatchConfig, PatchManager
from blueprints.patch_bp import patch_bp, init_app as patch_init

logger = logging.getLogger(__name__)

_audit_logger = logging.getLogger('aether.patch.audit')
_audit_logger.setLevel(logging.INFO)
_audit_logger.propagate = False  # Don't spam console


def configure_audit_log(log_dir):
    """Attach a rotating file handler for patch audit entries."""
    os.makedirs(log_dir, exist_ok=True)
    path = os.path.join(log_dir, 'patch-audit.log')
    for handler in _audit_logger.handlers:
        if getattr(handler, 'baseFilename', None) == os.path.abspath(path):
            return path
    handler = RotatingFileHandler(
        path,
        maxBytes=5 * 1024 * 1024,  # 5 MB per file
        backupCount=5,
        encoding='utf-8'
    )
    handler.setFormatter(logging.Formatter('%(asctime)s %(message)s', datefmt='%Y-%m-%dT%H:%M:%S'))
    _audit_logger.addHandler(handler)
    return path


def audit_log(event_type, **kwargs):
    """Write a structured audit log entry."""
    entry = json.dumps({'event': event_type, **kwargs}, separators=(',', ':'), default=str)
    _audit_logger.info(entry)


def create_app(config=None, manager=None):
    """
    Build the Flask app.

    Args:
        config: PatchConfig (read from the environment if omitted)
        manager: PatchManager to serve (built from config if omitted)
    """
    config = config or PatchConfig.from_env()

    audit = None
    if config.log_dir:
        audit_path = configure_audit_log(config.log_dir)
        logger.info(f"Patch audit log: {audit_path}")
        audit = audit_log

    if manager is None:
        client = CoreApiClient(config.core_url, timeout=config.http_timeout_s)
        manager = PatchManager(client, config, audit=audit)

    app = Flask(__name__)
    CORS(app, resources={r"/api/*": {"origins": config.cors_origins}})

    patch_init(manager)
    app.register_blueprint(patch_bp)
    app.config['PATCH_MANAGER'] = manager
    return app


def main():
    logging.basicConfig(
        level=logging.INFO,
        format='%(asctime)s %(levelname)s %(name)s: %(message)s'
    )
    config = PatchConfig.from_env()
    logger.info(f"Core: {config.core_url}  CORS origins: {config.cors_origins}")
    app = create_app(config)
    app.run(host='0.0.0.0', port=config.port, debug=False, threaded=True)


if __name__ == '__main__':
    main()
