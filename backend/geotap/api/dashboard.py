"""Monitoring dashboard API - read-only, Admin Only."""
from flask import Blueprint, current_app, request
from flask_jwt_extended import jwt_required

from geotap.services.dashboard_service import DashboardService, LogFilters
from geotap.utils.decorators import admin_required
from geotap.utils.errors import InvalidInputError
from geotap.utils.helpers import success_response
from geotap.utils.validators import Validator

dashboard_bp = Blueprint('dashboard', __name__)

def _filters_from_args() -> LogFilters:
    return LogFilters.from_args(
        start=Validator.parse_datetime(request.args.get('start'), 'start'),
        end=Validator.parse_datetime(request.args.get('end'), 'end', end_of_day=True),
        classroom_id=request.args.get('classroom_id'),
        status=request.args.get('status')
    )

@dashboard_bp.route('/logs', methods=['GET'])
@jwt_required()
@admin_required
def get_logs():
    """Filtered attendance feed."""
    page = request.args.get('page', type=int, default=1)
    per_page = request.args.get('per_page', type=int, default=current_app.config['DEFAULT_PAGE_SIZE'])
    if page < 1 or per_page < 1:
        raise InvalidInputError('page and per_page must be positive')
    per_page = min(per_page, current_app.config['MAX_PAGE_SIZE'])

    return success_response(data=DashboardService.list_logs(_filters_from_args(), page=page, per_page=per_page))

@dashboard_bp.route('/summary', methods=['GET'])
@jwt_required()
@admin_required
def get_summary():
    """Analytics summary for the current filters."""
    return success_response(data=DashboardService.summary(_filters_from_args()))
