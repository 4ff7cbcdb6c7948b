from __future__ import annotations
from pathlib import Path
from typing import Any, Tuple
from urllib.parse import quote
import json
import logging
import time
from collections import deque, defaultdict

from flask import Flask, request, jsonify, Response
from flask_sock import Sock

from jsoncsv.api.jobs import JobManager, FINISHED
from jsoncsv.config.env import get_server_config, configure_logging
from jsoncsv.converter.core import convert, csv_filename, parse_json
from jsoncsv.errors import EmptyInputError, InvalidJsonError

logger = logging.getLogger(__name__)

OPENAPI_PATH = Path(__file__).with_name("openapi.json")
CSV_CONTENT_TYPE = "text/csv; charset=utf-8"

app = Flask(__name__)
app.config['MAX_CONTENT_LENGTH'] = get_server_config().max_content_length
sock = Sock(app)

JOBS = JobManager()

# Configuration helpers (overridable via app.config in tests)

def _get_api_key() -> str | None:
    if 'API_KEY' in app.config:
        return app.config.get('API_KEY')
    return get_server_config().api_key


def _get_rate_limit() -> tuple[int, float]:
    cfg = get_server_config()
    n = app.config.get('RATE_LIMIT_N')
    w = app.config.get('RATE_LIMIT_WINDOW_SEC')
    if n is None:
        n = cfg.rate_limit_n
    if w is None:
        w = cfg.rate_limit_window_sec
    return int(n), float(w)

_recent: dict[str, deque[float]] = defaultdict(lambda: deque(maxlen=100))


def _client_ip() -> str:
    xff = request.headers.get('X-Forwarded-For')
    if xff:
        return xff.split(',')[0].strip()
    return request.remote_addr or 'anon'


def _check_api_key():
    api_key = _get_api_key()
    if api_key:
        provided = request.headers.get('X-API-Key')
        if provided != api_key:
            return jsonify({'error': 'unauthorized'}), 401
    return None


def _check_rate_limit(ip: str):
    n, window = _get_rate_limit()
    if n <= 0:
        return None
    now = time.time()
    dq = _recent[ip]
    while dq and now - dq[0] > window:
        dq.popleft()
    if len(dq) >= n:
        retry = max(0.0, window - (now - dq[0]))
        resp = jsonify({'error': 'rate_limited'})
        resp.status_code = 429
        resp.headers['Retry-After'] = f"{retry:.2f}"
        return resp
    dq.append(now)
    return None


@app.before_request
def _auth_and_rate_limit():
    if request.path.startswith('/api/'):
        unauthorized = _check_api_key()
        if unauthorized is not None:
            return unauthorized
        if request.method == 'POST':
            rl = _check_rate_limit(_client_ip())
            if rl is not None:
                return rl
    return None


def _error(message: str, status: int):
    if status >= 500:
        logger.exception("%s %s failed: %s", request.method, request.path, message)
    else:
        logger.warning("%s %s rejected (%d): %s", request.method, request.path, status, message)
    return jsonify({'error': message}), status


def _read_input() -> Tuple[Any, str]:
    """Pull ``(jsonData, fileName)`` from a JSON body or a multipart ``file`` upload."""
    upload = request.files.get('file')
    if upload is not None:
        return parse_json(upload.read()), upload.filename or ''
    payload = parse_json(request.get_data())
    if not isinstance(payload, dict) or payload.get('jsonData') is None:
        raise EmptyInputError("No data to convert")
    return payload['jsonData'], str(payload.get('fileName') or '')


def _csv_response(body: bytes, file_name: str) -> Response:
    name = quote(csv_filename(file_name), safe='')
    return Response(body, content_type=CSV_CONTENT_TYPE, headers={
        'Content-Disposition': f'attachment; filename="{name}"'
    })


@app.post('/api/convert')
def post_convert():
    try:
        value, file_name = _read_input()
        result = convert(value)
    except (InvalidJsonError, EmptyInputError) as e:
        return _error(str(e), 400)
    except Exception as e:
        return _error(f"Conversion failed: {e}", 500)
    return _csv_response(result.body, file_name)


@app.post('/api/jobs')
def post_jobs():
    try:
        value, file_name = _read_input()
    except (InvalidJsonError, EmptyInputError) as e:
        return _error(str(e), 400)
    job = JOBS.submit(value, file_name)
    return jsonify({'job_id': job.id, 'status': 'queued'}), 202


@app.get('/api/jobs/<jid>')
def get_job(jid: str):
    j = JOBS.get(jid)
    if not j:
        return jsonify({'error': 'not_found'}), 404
    return jsonify({
        'job_id': j.id,
        'file_name': j.file_name,
        'status': j.status,
        'events': j.events,
        'row_count': j.row_count,
        'error': j.error,
    })


@app.get('/api/jobs/<jid>/result')
def get_job_result(jid: str):
    j = JOBS.get(jid)
    if not j:
        return jsonify({'error': 'not_found'}), 404
    if j.status == 'failed':
        return jsonify({'error': j.error}), 422
    if j.status != 'completed' or j.body is None:
        return jsonify({'error': 'not_ready', 'status': j.status}), 409
    return _csv_response(j.body, j.file_name)


@app.delete('/api/jobs/<jid>')
def delete_job(jid: str):
    if not JOBS.discard(jid):
        return jsonify({'error': 'not_found'}), 404
    return '', 204


@app.get('/openapi.json')
def get_openapi():
    try:
        spec = json.loads(OPENAPI_PATH.read_text(encoding='utf-8'))
    except OSError:
        return jsonify({'error': 'openapi_not_found'}), 404
    return jsonify(spec)


@sock.route('/api/jobs/<jid>/events')
def ws_events(ws, jid):  # pragma: no cover (basic smoke only)
    j = JOBS.get(jid)
    if not j:
        ws.close()
        return
    last_idx = 0
    start = time.time()
    while ws.connected and time.time() - start < 30:
        evs = j.events
        if last_idx < len(evs):
            for ev in evs[last_idx:]:
                ws.send(json.dumps(ev))
            last_idx = len(evs)
        elif j.status in FINISHED:
            break
        time.sleep(0.05)


if __name__ == '__main__':
    configure_logging()
    app.run(host='0.0.0.0', port=8000)
