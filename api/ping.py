def handler(request):
    # Health check plus session state; never triggers a sheet fetch
    from api._shared import json_response, SESSION
    if request.method == "OPTIONS":
        return json_response({"ok": True}, 204)
    return json_response({
        "ok": True,
        "loaded": SESSION.has_loaded,
        "loading": SESSION.loading,
        "count": len(SESSION.dataset),
        "lastUpdated": SESSION.last_updated,
    }, 200)
