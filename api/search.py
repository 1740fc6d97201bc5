import json
import traceback


def handler(request):
    try:
        from api._shared import json_response, build_search, SESSION
        if request.method == "OPTIONS":
            return json_response({"ok": True}, 204)
        params = {
            'q': (request.args.get('q') or request.args.get('search') or '').strip(),
            'status': request.args.get('status') or '',
            'type': request.args.get('type') or '',
            'aisle': request.args.get('aisle') or '',
            'side': request.args.get('side') or '',
            'page': (request.args.get('page') or '1').strip(),
        }
        data = build_search(SESSION, params)
        return json_response(data, 200)
    except Exception as e:
        trace = traceback.format_exc()
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
        }
        return (json.dumps({"results": [], "error": str(e), "trace": trace}), 200, headers)
