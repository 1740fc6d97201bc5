from flask import Flask, jsonify, make_response, request

from api._shared import SESSION, build_meta, build_refresh, build_search

# Vercel: export a WSGI Flask app named `app` with ONLY API routes (no static serving)
app = Flask(__name__)


def json_utf8(data, status: int = 200):
    resp = make_response(jsonify(data), status)
    resp.headers['Content-Type'] = 'application/json; charset=utf-8'
    resp.headers['Cache-Control'] = 'no-store, no-cache, must-revalidate, max-age=0'
    resp.headers['Access-Control-Allow-Origin'] = '*'
    return resp


@app.get('/meta')
@app.get('/api/meta')
def api_meta():
    meta = build_meta(SESSION)
    if meta.get('error'):
        app.logger.warning("[/meta] serving %d records with error=%s", meta['count'], meta['error'])
    return json_utf8(meta)


@app.get('/search')
@app.get('/api/search')
def api_search():
    data = build_search(SESSION, request.args)
    app.logger.info("[/search] response: total=%d page=%d/%d",
                    data['total'], data['page'], data['pageCount'])
    return json_utf8(data)


@app.route('/refresh', methods=['GET', 'POST'])
@app.route('/api/refresh', methods=['GET', 'POST'])
def api_refresh():
    data = build_refresh(SESSION)
    if data['busy']:
        app.logger.info("[/refresh] load already running")
    return json_utf8(data)


@app.get('/health')
@app.get('/api/health')
def api_health():
    return json_utf8({'ok': True})
