# cozycabin/main/routes.py
from flask import jsonify, current_app
import pymongo
from cozycabin.main import main_bp
from cozycabin import mongo


@main_bp.route('/health')
def health():
    try:
        mongo.cx.server_info()
    except pymongo.errors.PyMongoError as e:
        current_app.logger.error(f"La base de datos no responde: {e}")
        return jsonify({"status": "error", "database": "unavailable"}), 503
    return jsonify({"status": "ok", "database": "ok"})
