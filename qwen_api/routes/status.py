"""
Account status route
"""

from flask import Blueprint, jsonify

from . import get_orchestrator

status_bp = Blueprint('status', __name__)


@status_bp.route("/api/status", methods=["GET"])
def status():
    """Check every configured account and report its status"""
    try:
        print("[Status] Status check requested")
        accounts = get_orchestrator().check_credentials()
        valid = [a for a in accounts if a["status"] == "OK"]

        return jsonify({
            "authenticated": bool(valid),
            "totalAccounts": len(accounts),
            "validAccounts": len(valid),
            "message": "Tokens available" if valid else "No valid tokens available",
            "accounts": accounts,
        })
    except Exception as e:
        print(f"[Status] Error checking status: {type(e).__name__}: {e}")
        return jsonify({"error": "Internal server error"}), 500
