# Flask web application for the Evidence Fusion Engine

import json
import logging
import os
import uuid

from flask import Flask, jsonify, request
from werkzeug.utils import secure_filename

from fusion_types import CandidateFormatError, ConfigurationError, candidates_from_list
from fusion_engine import localize
from exif_evidence import candidate_from_image

# --- Application Configuration ---
UPLOAD_FOLDER = os.getenv("FUSION_UPLOAD_FOLDER", "uploads")
ALLOWED_EXTENSIONS = {'png', 'jpg', 'jpeg', 'heic', 'heif', 'webp', 'tiff'}

app = Flask(__name__)
app.config['UPLOAD_FOLDER'] = UPLOAD_FOLDER
app.config['MAX_CONTENT_LENGTH'] = int(os.getenv("FUSION_MAX_UPLOAD_MB", "16")) * 1024 * 1024


def is_allowed_file(filename):
    """Checks if the uploaded file has an allowed image extension."""
    return '.' in filename and \
           filename.rsplit('.', 1)[1].lower() in ALLOWED_EXTENSIONS


def _as_bool(value):
    if isinstance(value, bool):
        return value
    if value is None:
        return False
    return str(value).strip().lower() in ("1", "true", "yes", "on")


def _optional_bool(value):
    return None if value is None or value == "" else _as_bool(value)


def _fusion_response(candidates, options):
    """Runs the engine and shapes the JSON reply; errors map to 4xx."""
    consolidate = options.get('consolidate')
    if consolidate is not None and not isinstance(consolidate, str):
        return jsonify({'success': False, 'error': 'Option "consolidate" must be one of: auto, always, never.'}), 400

    try:
        result = localize(
            candidates,
            region_code=options.get('region_code'),
            map_screenshot_detected=_as_bool(options.get('map_screenshot_detected')),
            critical_landmark_detected=_optional_bool(options.get('critical_landmark_detected')),
            consolidation=consolidate,
        )
    except ConfigurationError as e:
        logging.error(f"Fusion request rejected: {e}")
        return jsonify({'success': False, 'error': str(e)}), 422

    if result is None:
        return jsonify({
            'success': False,
            'error': 'Could not localize: no candidate survived validation and the region check.',
            'result': None,
        }), 200
    return jsonify({'success': True, 'result': result.to_dict()}), 200


@app.route('/health')
def health():
    return jsonify({'status': 'ok'})


@app.route('/localize', methods=['POST'])
def handle_localize():
    """Fuses a JSON list of detector candidates."""
    payload = request.get_json(silent=True)
    if not isinstance(payload, dict):
        return jsonify({'success': False, 'error': 'Request body must be a JSON object.'}), 400

    try:
        candidates = candidates_from_list(payload.get('candidates', []))
    except CandidateFormatError as e:
        return jsonify({'success': False, 'error': f'Invalid candidate: {e}'}), 400

    return _fusion_response(candidates, payload)


@app.route('/localize/image', methods=['POST'])
def handle_image_upload():
    """
    Fuses an uploaded photo's EXIF GPS with any candidates sent alongside it.
    Accepts multipart form data: 'image', optional 'candidates' (JSON list) and options.
    """
    if 'image' not in request.files:
        return jsonify({'success': False, 'error': 'No image file selected.'}), 400

    uploaded_file = request.files['image']
    if uploaded_file.filename == '' or not is_allowed_file(uploaded_file.filename):
        allowed_types_str = ', '.join(sorted(ALLOWED_EXTENSIONS))
        return jsonify({'success': False, 'error': f'Invalid file type. Allowed types: {allowed_types_str}'}), 400

    try:
        candidates = candidates_from_list(json.loads(request.form.get('candidates') or '[]'))
    except (json.JSONDecodeError, CandidateFormatError) as e:
        return jsonify({'success': False, 'error': f'Invalid candidate: {e}'}), 400

    os.makedirs(app.config['UPLOAD_FOLDER'], exist_ok=True)
    original_extension = os.path.splitext(uploaded_file.filename)[1].lower()
    unique_filename = secure_filename(f"{uuid.uuid4()}{original_extension}")
    temp_filepath = os.path.join(app.config['UPLOAD_FOLDER'], unique_filename)

    try:
        uploaded_file.save(temp_filepath)
        logging.info(f"Image temporarily saved: {temp_filepath}")
        exif_candidate = candidate_from_image(temp_filepath)
        if exif_candidate is not None:
            candidates.append(exif_candidate)
        return _fusion_response(candidates, request.form)
    finally:
        # Ensure the temporary file is deleted after processing
        if os.path.exists(temp_filepath):
            try:
                os.remove(temp_filepath)
                logging.info(f"Cleaned up temporary file: {temp_filepath}")
            except OSError as e_remove:
                logging.error(f"Failed to remove temporary file {temp_filepath}: {e_remove}")


if __name__ == '__main__':
    # debug=True is for development only (enables debugger and auto-reloader)
    app.run(debug=_as_bool(os.getenv("FLASK_DEBUG")))
