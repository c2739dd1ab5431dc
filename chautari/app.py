# SPDX-License-Identifier: Apache-2.0

"""
Chautari Switch API - Flask Application Entry Point

This module builds the Flask application with OpenAPI 3.0 support, wires the
switch request and agency services to their storage and messaging backends,
and registers middleware and routes.
"""

import os
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional
from flask import jsonify, make_response, request, current_app
from pydantic import ValidationError
from flask_openapi3 import OpenAPI, Info, Tag

from .observability.config import setup_observability
from .observability.middleware import add_observability_middleware
from .middleware.auth import AuthMiddleware
from .middleware.error_handler import ErrorHandlerMiddleware
from .models.responses import HealthCheckResponse
from .services.agencies import AgencyService
from .services.agency_search import AgencySearchService
from .services.amqp import AMQPConnectionError, AMQPNotificationDispatcher, create_amqp_service
from .services.audit import AuditEmitter, MongoAuditSink
from .services.auth import AuthService
from .services.hal import create_hal_formatter
from .services.memory import (
    InMemoryAgencyCatalog, InMemoryAuditSink, InMemoryPatientDirectory,
    InMemorySwitchRequestStore, RecordingNotificationDispatcher
)
from .services.mongodb import MongoDBService
from .services.repositories import (
    MongoAgencyCatalog, MongoPatientDirectory, MongoSwitchRequestStore
)
from .services.switch_requests import SwitchRequestService

logger = logging.getLogger(__name__)

SERVICE_VERSION = "1.0.0"


def load_config() -> Dict[str, Any]:
    """Read application configuration from the environment."""
    environment = os.getenv('ENVIRONMENT', 'development')
    return {
        'ENVIRONMENT': environment,
        'DEBUG': environment == 'development',
        'BASE_URL': os.getenv('BASE_URL', 'http://localhost:5000'),
        'STORAGE_BACKEND': os.getenv('STORAGE_BACKEND', 'mongodb'),
        'MONGODB_URI': os.getenv('MONGODB_URI', 'mongodb://localhost:27017/chautari_dev'),
        'MONGODB_DATABASE': os.getenv('MONGODB_DATABASE', 'chautari_dev'),
        'MONGODB_CREATE_INDEXES': os.getenv('MONGODB_CREATE_INDEXES', 'true').lower() == 'true',
        'NOTIFICATIONS_ENABLED': os.getenv('NOTIFICATIONS_ENABLED', 'true').lower() == 'true',
        'JWT_PRIVATE_KEY': os.getenv('JWT_PRIVATE_KEY'),
        'JWT_PUBLIC_KEY': os.getenv('JWT_PUBLIC_KEY'),
        'JWT_ACCESS_TOKEN_MINUTES': int(os.getenv('JWT_ACCESS_TOKEN_MINUTES', '15')),
        'OTEL_ENABLED': os.getenv('OTEL_ENABLED', 'true').lower() == 'true',
    }


def validation_error_response(e: ValidationError):
    """
    Problem document for path and query parameters rejected by their models.

    Names the first failing parameter, like body validation does.
    """
    first = e.errors()[0]
    loc = first.get("loc") or ("request",)
    field = str(loc[0])
    body = current_app.hal_formatter.build_error_response(
        "invalid-value",
        "Invalid Value",
        400,
        f"'{field}': {first.get('msg', 'invalid value')}",
        request.path,
        field=field
    )
    return make_response(jsonify(body), 400)


def build_services(config: Dict[str, Any]) -> Dict[str, Any]:
    """
    Construct collaborators and services for the configured backend.

    Args:
        config: Application configuration

    Returns:
        Dictionary of named services, attached to the app by ``create_app``
    """
    services: Dict[str, Any] = {}

    if config['STORAGE_BACKEND'] == 'memory':
        logger.warning("Using in-memory storage; data is lost on restart")
        store = InMemorySwitchRequestStore()
        catalog = InMemoryAgencyCatalog()
        patients = InMemoryPatientDirectory()
        audit_sink = InMemoryAuditSink()
    else:
        mongodb_service = MongoDBService(config['MONGODB_URI'], config['MONGODB_DATABASE'])
        if config.get('MONGODB_CREATE_INDEXES'):
            mongodb_service.create_indexes()
        store = MongoSwitchRequestStore(mongodb_service)
        catalog = MongoAgencyCatalog(mongodb_service)
        patients = MongoPatientDirectory(mongodb_service)
        audit_sink = MongoAuditSink(mongodb_service)
        services['mongodb_service'] = mongodb_service

    if config['NOTIFICATIONS_ENABLED'] and config['STORAGE_BACKEND'] != 'memory':
        amqp_service = create_amqp_service()
        try:
            amqp_service.declare_exchange()
        except AMQPConnectionError as e:
            logger.warning("AMQP broker unavailable at startup, notifications may be dropped",
                           extra={"error": str(e)})
        notifier = AMQPNotificationDispatcher(amqp_service)
        services['amqp_service'] = amqp_service
    else:
        notifier = RecordingNotificationDispatcher()

    emitter = AuditEmitter(audit_sink)
    services.update({
        'switch_request_service': SwitchRequestService(store, catalog, emitter, notifier),
        'agency_search_service': AgencySearchService(catalog, patients),
        'agency_service': AgencyService(catalog, emitter),
        'auth_service': AuthService(
            config.get('JWT_PRIVATE_KEY'),
            config.get('JWT_PUBLIC_KEY'),
            config.get('JWT_ACCESS_TOKEN_MINUTES')
        ),
    })
    return services


def create_app(config: Optional[Dict[str, Any]] = None,
               services: Optional[Dict[str, Any]] = None) -> OpenAPI:
    """
    Application factory.

    Args:
        config: Overrides applied on top of the environment configuration
        services: Pre-built services (tests); built from config when omitted

    Returns:
        Configured OpenAPI (Flask) application
    """
    settings = load_config()
    settings.update(config or {})

    setup_observability(settings['ENVIRONMENT'], settings['OTEL_ENABLED'])

    info = Info(
        title="Chautari Switch API",
        version=SERVICE_VERSION,
        description="Home-care agency discovery and agency switch requests"
    )
    app = OpenAPI(
        __name__,
        info=info,
        validation_error_status=400,
        validation_error_callback=validation_error_response
    )
    app.config.update(settings)

    add_observability_middleware(app)

    services = services if services is not None else build_services(settings)
    for name, service in services.items():
        setattr(app, name, service)

    app.hal_formatter = create_hal_formatter(settings['BASE_URL'])
    app.auth_middleware = AuthMiddleware(services['auth_service'])
    ErrorHandlerMiddleware(app, app.hal_formatter)

    from .routes.agencies import agencies_bp
    from .routes.switch_requests import switch_requests_bp
    from .routes.stats import stats_bp

    app.register_api(agencies_bp)
    app.register_api(switch_requests_bp)
    app.register_api(stats_bp)

    health_tag = Tag(name="Health", description="System health and status")

    @app.get('/api/healthz', tags=[health_tag], responses={200: HealthCheckResponse, 503: HealthCheckResponse})
    def health_check():
        """Health check with dependency status."""
        dependencies: Dict[str, Any] = {}
        healthy = True

        mongodb_service = getattr(app, 'mongodb_service', None)
        if mongodb_service is not None:
            dependencies['mongodb'] = mongodb_service.health_check()
            healthy = healthy and dependencies['mongodb']['status'] == 'healthy'

        amqp_service = getattr(app, 'amqp_service', None)
        if amqp_service is not None:
            # Notifications are best-effort, so a broker outage only degrades.
            dependencies['amqp'] = {'status': 'healthy' if amqp_service.health_check() else 'unhealthy'}

        status = 'healthy'
        if not healthy:
            status = 'unhealthy'
        elif any(d.get('status') != 'healthy' for d in dependencies.values()):
            status = 'degraded'

        body = {
            'status': status,
            'service': 'chautari-switch-api',
            'version': SERVICE_VERSION,
            'environment': app.config['ENVIRONMENT'],
            'timestamp': datetime.now(timezone.utc).isoformat(),
            'dependencies': dependencies,
            '_links': {'self': {'href': f"{app.config['BASE_URL']}/api/healthz"}}
        }
        return jsonify(body), 200 if healthy else 503

    logger.info("Application created", extra={"environment": app.config['ENVIRONMENT'],
                                               "storage_backend": app.config['STORAGE_BACKEND']})
    return app


if __name__ == '__main__':
    # Development server
    application = create_app()
    application.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=application.config['DEBUG']
    )
