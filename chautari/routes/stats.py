# SPDX-License-Identifier: Apache-2.0

"""
Dashboard statistics endpoints.
"""

from flask import jsonify, current_app
from flask_openapi3 import APIBlueprint, Tag

from ..middleware.auth import require_actor
from ..models.responses import RequestStatsResponse
from ..utils.request import current_actor

stats_tag = Tag(name="Statistics", description="Switch request dashboard counts")
stats_bp = APIBlueprint('stats', __name__, url_prefix='/api/stats', abp_tags=[stats_tag])


@stats_bp.get('/requests', responses={200: RequestStatsResponse})
@require_actor
def request_stats():
    """
    Switch request counts for the caller's dashboard.

    Patients get their own requests, agency members their agency's and
    platform administrators the whole platform.
    """
    stats = current_app.switch_request_service.stats_for_actor(current_actor())
    body = stats.to_dict()
    body["_links"] = {
        "self": {"href": f"{current_app.config['BASE_URL']}/api/stats/requests"},
        "requests": {"href": f"{current_app.config['BASE_URL']}/api/switch-requests"}
    }
    return jsonify(body)
