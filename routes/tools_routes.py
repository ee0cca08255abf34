"""
Text tool routes: regex extraction, random strings, the HTML extractor and
the send details formatter
"""

from flask import Blueprint, current_app, jsonify, request

tools_bp = Blueprint('tools', __name__, url_prefix='/api/tools')

FAILURE_STATUS = {
    'FETCH_ERROR': 502,
    'NOTHING_EXTRACTED': 409,
}


@tools_bp.route('/extract', methods=['POST'])
def extract():
    """Unique servers / ips / emails / domains found in the posted text"""
    body = request.get_json(silent=True) or {}
    service = current_app.services.get('text_tools')

    extraction_type = body.get('type')
    if not extraction_type:
        return jsonify({'success': True, 'data': service.extract_all(body.get('text', ''))})

    result = service.extract(body.get('text', ''), extraction_type)
    if result.is_failure:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


@tools_bp.route('/random-string', methods=['POST'])
def random_string():
    body = request.get_json(silent=True) or {}
    try:
        length = int(body.get('length', 16))
    except (TypeError, ValueError):
        return jsonify({'success': False, 'error': 'length must be an integer'}), 400

    result = current_app.services.get('text_tools').generate_string(
        length=length,
        include_symbols=bool(body.get('include_symbols')),
        include_numbers=bool(body.get('include_numbers')),
        include_uppercase=bool(body.get('include_uppercase')),
        word_entries=body.get('word_entries')
    )
    if result.is_failure:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


def _extraction_response(result):
    if result.is_failure:
        return jsonify(result.to_dict()), FAILURE_STATUS.get(result.error_code, 400)
    return jsonify({'success': True, 'data': result.data.to_dict()})


@tools_bp.route('/html/extract', methods=['POST'])
def extract_html():
    """Fetch a page (https:// assumed) and return its source, text, clean html and attributes"""
    body = request.get_json(silent=True) or {}
    return _extraction_response(current_app.services.get('html_extractor').extract_url(body.get('url')))


@tools_bp.route('/html', methods=['GET'])
def html_content():
    """Held extraction in one mode: source, text or clean"""
    result = current_app.services.get('html_extractor').get_content(request.args.get('mode', 'source'))
    if result.is_failure:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


@tools_bp.route('/html/replace-domains', methods=['POST'])
def replace_domains():
    body = request.get_json(silent=True) or {}
    return _extraction_response(current_app.services.get('html_extractor').replace_domains(body.get('domain')))


@tools_bp.route('/html/revert-domains', methods=['POST'])
def revert_domains():
    return _extraction_response(current_app.services.get('html_extractor').revert_domain_changes())


@tools_bp.route('/details', methods=['POST'])
def format_details():
    """Formatted send details block"""
    result = current_app.services.get('details').format(request.get_json(silent=True) or {})
    if result.is_failure:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())


@tools_bp.route('/details/send-types/toggle', methods=['POST'])
def toggle_send_type():
    body = request.get_json(silent=True) or {}
    result = current_app.services.get('details').toggle_send_type(body.get('send_types'), body.get('send_type'))
    if result.is_failure:
        return jsonify(result.to_dict()), 400
    return jsonify(result.to_dict())
