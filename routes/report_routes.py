"""
Conversion Reports Routes

JSON endpoints behind the conversion reports panel: table page, refresh,
date range / page / sort / filter actions, reset and CSV export.
"""

from datetime import datetime
from flask import Blueprint, Response, current_app, jsonify, request
import logging

from utils.datetime_utils import end_of_day, start_of_day, utc_now

logger = logging.getLogger(__name__)

reports_bp = Blueprint('reports', __name__, url_prefix='/api/reports')

FAILURE_STATUS = {
    'FETCH_ERROR': 502,
    'STALE_RESPONSE': 409,
}


def _service():
    return current_app.services.get('conversion_reports')


def _page_response(service):
    page = service.get_page()
    body = page.to_dict()
    body['view_state'] = service.view_state.to_dict()
    return jsonify(body)


def _failure(result, default_status=400):
    return jsonify(result.to_dict()), FAILURE_STATUS.get(result.error_code, default_status)


def _json_body():
    return request.get_json(silent=True) or {}


def _parse_date(value, end=False):
    """Accept YYYY-MM-DD (whole day) or a full ISO datetime."""
    if not value:
        raise ValueError("Date is required")
    parsed = datetime.fromisoformat(str(value))
    if len(str(value)) == 10:
        parsed = end_of_day(parsed) if end else start_of_day(parsed)
    return parsed.replace(tzinfo=None)


def _int_field(body, key):
    value = body.get(key)
    if value is None or isinstance(value, bool):
        raise ValueError(f"{key} is required")
    return int(value)


@reports_bp.route('', methods=['GET'])
def conversions_page():
    """Current page of the reports table"""
    return _page_response(_service())


@reports_bp.route('/refresh', methods=['POST'])
def refresh():
    """Fetch both sources and reconcile into the held conversions"""
    service = _service()
    result = service.refresh()

    if result.is_failure:
        logger.warning(f"Conversion refresh failed: {result.error}")
        return _failure(result)

    service.clamp_current_page()
    body = service.get_page().to_dict()
    body['view_state'] = service.view_state.to_dict()
    body['refresh'] = result.data
    body['refreshed_at'] = utc_now().isoformat()
    return jsonify(body)


@reports_bp.route('/date-range', methods=['POST'])
def set_date_range():
    body = _json_body()
    try:
        start_date = _parse_date(body.get('start_date'))
        end_date = _parse_date(body.get('end_date'), end=True)
    except ValueError as e:
        return jsonify({'success': False, 'error': f"Invalid date: {e}"}), 400

    result = _service().set_date_range(start_date, end_date)
    if result.is_failure:
        return _failure(result)
    return jsonify({'success': True, 'view_state': result.data.to_dict()})


@reports_bp.route('/page', methods=['POST'])
def set_page():
    try:
        page = _int_field(_json_body(), 'page')
    except (TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    service = _service()
    result = service.set_page(page)
    if result.is_failure:
        return _failure(result)
    return _page_response(service)


@reports_bp.route('/rows-per-page', methods=['POST'])
def set_rows_per_page():
    try:
        rows_per_page = _int_field(_json_body(), 'rows_per_page')
    except (TypeError, ValueError) as e:
        return jsonify({'success': False, 'error': str(e)}), 400

    service = _service()
    result = service.set_rows_per_page(rows_per_page)
    if result.is_failure:
        return _failure(result)
    return _page_response(service)


@reports_bp.route('/sort', methods=['POST'])
def set_sort():
    """Same field toggles direction, a new field starts ascending"""
    sort_field = _json_body().get('field')
    if not sort_field:
        return jsonify({'success': False, 'error': 'field is required'}), 400

    service = _service()
    result = service.set_sort_field(sort_field)
    if result.is_failure:
        return _failure(result)
    return _page_response(service)


@reports_bp.route('/filter', methods=['POST'])
def set_filter():
    service = _service()
    service.set_filter(str(_json_body().get('value') or ''))
    return _page_response(service)


@reports_bp.route('/reset', methods=['POST'])
def reset():
    result = _service().reset()
    return jsonify(result.to_dict())


@reports_bp.route('/export', methods=['GET'])
def export():
    """CSV download of the selected ids (?ids=1,2,3) or of the current page"""
    ids = None
    raw_ids = request.args.get('ids')
    if raw_ids is not None:
        try:
            ids = [int(part) for part in raw_ids.split(',') if part.strip()]
        except ValueError:
            return jsonify({'success': False, 'error': 'ids must be comma separated integers'}), 400

    result = _service().export_csv(ids)
    if result.is_failure:
        return _failure(result)

    filename = f"conversions_export_{utc_now().strftime('%Y-%m-%d')}.csv"
    return Response(
        result.data,
        mimetype='text/csv',
        headers={'Content-Disposition': f'attachment; filename={filename}'}
    )
