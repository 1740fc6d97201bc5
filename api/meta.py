import json
import traceback


def handler(request):
    # Wrap everything so meta always returns JSON (with error/trace if needed)
    try:
        from api._shared import json_response, build_meta, SESSION
        if request.method == "OPTIONS":
            return json_response({"ok": True}, 204)
        return json_response(build_meta(SESSION), 200)
    except Exception as e:
        trace = traceback.format_exc()
        body = {
            "error": str(e),
            "trace": trace
        }
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
        }
        return (json.dumps(body), 200, headers)
