"""
SongSplit - Royalties API Blueprint

REST endpoints over the royalty ledger.

Provides access to:
- Distribute a payment across a song's contributors
- Register songs and inspect their payment history
- Query per-song and aggregate contributor balances
- Admin controls (pause, unpause, admin transfer)

Every ledger call answers with the {"ok": ..., "value": ...} shape. Failed
calls add an "error" name next to the numeric code.
"""

from flask import Blueprint, jsonify, request

from api import state
from api.utils import (
    MAX_IDENTITY_LENGTH,
    MAX_TEXT_LENGTH,
    bounded_limit,
    require_api_key,
    validate_json_schema,
)
from royalty_distributor import ErrorCode, LedgerResponse

royalties_bp = Blueprint("royalties", __name__)

HTTP_STATUS_BY_ERROR = {
    ErrorCode.UNAUTHORIZED: 403,
    ErrorCode.PAUSED: 409,
    ErrorCode.INVALID_SONG: 422,
    ErrorCode.INVALID_AMOUNT: 400,
    ErrorCode.DISTRIBUTION_FAILED: 422,
}


def _respond(response: LedgerResponse, success_status: int = 200, song_id: int | None = None):
    """Render a LedgerResponse, mapping failures onto HTTP status codes."""
    body = response.to_dict()
    if response.ok:
        return jsonify(body), success_status

    code = response.error
    status = HTTP_STATUS_BY_ERROR.get(code, 400)
    if code == ErrorCode.INVALID_SONG and song_id is not None and state.ledger.get_song(song_id) is None:
        status = 404
    body["error"] = code.name.lower()
    return jsonify(body), status


def _json_body():
    return request.get_json(silent=True) or {}


# =============================================================================
# Distribution
# =============================================================================


@royalties_bp.route("/royalties/distribute", methods=["POST"])
@require_api_key
def distribute():
    """
    Distribute a payment for a song.

    Request body:
        {
            "caller": "deployer",
            "song_id": 1,
            "amount": 1000
        }

    Returns:
        201 with {"ok": true, "value": payment_id}
    """
    data = _json_body()
    is_valid, error = validate_json_schema(
        data,
        required_fields={"caller": str, "song_id": int, "amount": int},
        max_lengths={"caller": MAX_IDENTITY_LENGTH},
    )
    if not is_valid:
        return jsonify({"error": error}), 400

    response = state.apply_mutation(
        lambda ledger: ledger.distribute(data["caller"], data["song_id"], data["amount"])
    )
    return _respond(response, success_status=201, song_id=data["song_id"])


@royalties_bp.route("/royalties/songs/<int:song_id>/preview", methods=["GET"])
def preview_distribution(song_id):
    """
    Show the shares a distribution would credit, without applying it.

    Query params:
        amount: Payment amount (required, integer)
    """
    amount = request.args.get("amount", type=int)
    if amount is None:
        return jsonify({"error": "Query parameter 'amount' must be an integer"}), 400

    return _respond(state.ledger.preview_distribution(song_id, amount), song_id=song_id)


# =============================================================================
# Songs
# =============================================================================


@royalties_bp.route("/royalties/songs", methods=["POST"])
@require_api_key
def register_song():
    """
    Register a song. Admin only.

    Request body:
        {
            "caller": "deployer",
            "song_id": 2,
            "title": "B-Side",
            "artist": "deployer",
            "ipfs_hash": "Qm...",
            "contributors": [
                {"contributor": "wallet_1", "percentage": 50},
                {"contributor": "wallet_3", "percentage": 50}
            ],
            "created_at": 1700000000000       // Optional
        }
    """
    data = _json_body()
    is_valid, error = validate_json_schema(
        data,
        required_fields={
            "caller": str,
            "song_id": int,
            "title": str,
            "artist": str,
            "ipfs_hash": str,
            "contributors": list,
        },
        optional_fields={"created_at": int},
        max_lengths={
            "caller": MAX_IDENTITY_LENGTH,
            "artist": MAX_IDENTITY_LENGTH,
            "title": MAX_TEXT_LENGTH,
            "ipfs_hash": MAX_TEXT_LENGTH,
        },
    )
    if not is_valid:
        return jsonify({"error": error}), 400

    response = state.apply_mutation(lambda ledger: ledger.register_song(
        caller=data["caller"],
        song_id=data["song_id"],
        title=data["title"],
        artist=data["artist"],
        ipfs_hash=data["ipfs_hash"],
        contributors=data["contributors"],
        created_at=data.get("created_at"),
    ))
    return _respond(response, success_status=201)


@royalties_bp.route("/royalties/songs/<int:song_id>", methods=["GET"])
def get_song(song_id):
    song = state.ledger.get_song(song_id)
    if song is None:
        return jsonify({"error": "Song not found"}), 404
    return jsonify(LedgerResponse.success(song).to_dict())


@royalties_bp.route("/royalties/songs/<int:song_id>/payments", methods=["GET"])
def get_song_payments(song_id):
    """List every payment recorded for a song, oldest first."""
    ok, payments = state.ledger.get_song_payments(song_id)
    return jsonify({
        "ok": ok,
        "value": [{"payment_id": payment_id, **record.to_dict()} for payment_id, record in payments],
    })


# =============================================================================
# History & Balances
# =============================================================================


@royalties_bp.route("/royalties/history/<int:song_id>/<int:payment_id>", methods=["GET"])
def get_royalty_history(song_id, payment_id):
    """Payment record for (song, payment id); value is null when absent."""
    return _respond(state.ledger.get_royalty_history(song_id, payment_id))


@royalties_bp.route("/royalties/balances/<int:song_id>/<contributor>", methods=["GET"])
def get_contributor_balance(song_id, contributor):
    return _respond(state.ledger.get_contributor_balance(song_id, contributor))


@royalties_bp.route("/royalties/balances/<contributor>", methods=["GET"])
def get_total_balance(contributor):
    """Aggregate balance across all songs."""
    return _respond(state.ledger.get_total_balance(contributor))


@royalties_bp.route("/royalties/state", methods=["GET"])
def get_ledger_state():
    """Admin, pause flag and payment counter, read as one snapshot."""
    return jsonify({"ok": True, "value": state.ledger.get_statistics()})


@royalties_bp.route("/royalties/events", methods=["GET"])
def get_events():
    """
    Recent audit events, newest first.

    Query params:
        limit: Max events (default/max 100)
    """
    limit = bounded_limit(request.args.get("limit", type=int))
    return jsonify({"ok": True, "value": state.ledger.get_events(limit=limit)})


# =============================================================================
# Admin
# =============================================================================


def _caller_from_body():
    data = _json_body()
    is_valid, error = validate_json_schema(
        data,
        required_fields={"caller": str},
        max_lengths={"caller": MAX_IDENTITY_LENGTH},
    )
    return data, error


@royalties_bp.route("/royalties/admin/pause", methods=["POST"])
@require_api_key
def pause():
    data, error = _caller_from_body()
    if error:
        return jsonify({"error": error}), 400

    response = state.apply_mutation(lambda ledger: ledger.pause(data["caller"]))
    return _respond(response)


@royalties_bp.route("/royalties/admin/unpause", methods=["POST"])
@require_api_key
def unpause():
    data, error = _caller_from_body()
    if error:
        return jsonify({"error": error}), 400

    response = state.apply_mutation(lambda ledger: ledger.unpause(data["caller"]))
    return _respond(response)


@royalties_bp.route("/royalties/admin/transfer", methods=["POST"])
@require_api_key
def transfer_admin():
    """
    Hand admin rights to another identity.

    Request body:
        {"caller": "deployer", "new_admin": "wallet_1"}
    """
    data = _json_body()
    is_valid, error = validate_json_schema(
        data,
        required_fields={"caller": str, "new_admin": str},
        max_lengths={"caller": MAX_IDENTITY_LENGTH, "new_admin": MAX_IDENTITY_LENGTH},
    )
    if not is_valid:
        return jsonify({"error": error}), 400
    if not data["new_admin"].strip():
        return jsonify({"error": "new_admin must not be empty"}), 400

    response = state.apply_mutation(lambda ledger: ledger.set_admin(data["caller"], data["new_admin"]))
    return _respond(response)
