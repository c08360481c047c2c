from flask import jsonify

from servicebook.logging_setup import TRACE_ID_CTX


def success_response(payload=None, message=None, status=200):
    resp = {"success": True}
    if payload is not None:
        resp.update(payload if isinstance(payload, dict) else {"data": payload})
    if message:
        resp["message"] = message
    return jsonify(resp), status


def error_response(code, message, details=None, status=400):
    err = {
        "code": code,
        "message": message,
        "details": details or {},
    }
    # lets a client quote the failing request when reporting a problem
    trace_id = TRACE_ID_CTX.get()
    if trace_id:
        err["trace_id"] = trace_id
    return jsonify({"error": err}), status
