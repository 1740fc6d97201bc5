import json
import traceback


def handler(request):
    # Manual "Sinc" button: reload the sheet, ignoring clicks while a load runs
    try:
        from api._shared import json_response, build_refresh, SESSION
        if request.method == "OPTIONS":
            return json_response({"ok": True}, 204)
        return json_response(build_refresh(SESSION), 200)
    except Exception as e:
        trace = traceback.format_exc()
        headers = {
            "Content-Type": "application/json; charset=utf-8",
            "Access-Control-Allow-Origin": "*",
            "Access-Control-Allow-Methods": "GET,POST,OPTIONS",
            "Access-Control-Allow-Headers": "Content-Type,Authorization",
            "Cache-Control": "no-store, no-cache, must-revalidate, max-age=0",
        }
        return (json.dumps({"ok": False, "error": str(e), "trace": trace}), 200, headers)
