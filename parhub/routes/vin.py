# parhub/routes/vin.py

"""
JSON endpoint for VIN decoding through the decode cache
"""

from flask import current_app, jsonify

from parhub.reconciliation.errors import UpstreamDecodeError, ValidationError
from parhub.reconciliation.vin_decode import build_decode_service


def register_vin_routes(app):
    """Register VIN decode routes"""

    @app.route("/api/vin/<vin>/decode", methods=["GET"])
    def api_decode_vin(vin):
        """
        Decode a VIN. Served from cache when fresh; a stale cache entry is
        returned with ``stale`` and ``warning`` when the provider fails.
        """
        try:
            result = build_decode_service().decode(vin)
        except ValidationError as exc:
            current_app.logger.info(f"Rejected VIN decode request for {vin!r}")
            return jsonify({"error": str(exc)}), 400
        except UpstreamDecodeError as exc:
            current_app.logger.warning(
                f"VIN decode provider failed for {exc.vin}: {exc.detail}",
                extra={"vin": exc.vin, "status_code": exc.status_code},
            )
            return jsonify({"error": "VIN decode provider unavailable", "detail": exc.detail}), 502
        return jsonify(result.to_dict())
