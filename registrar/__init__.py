import logging

from flask import Flask, jsonify
from .extensions import db, migrate, login_manager
from .errors import RegistrarError

def configure_logging(app):
    level = app.config.get("LOG_LEVEL", "INFO")
    logging.getLogger(__name__).setLevel(level)
    if not logging.getLogger().handlers:
        logging.basicConfig(format="%(asctime)s %(levelname)s [%(name)s] %(message)s")

def register_error_handlers(app):
    @app.errorhandler(RegistrarError)
    def handle_registrar_error(err):
        return jsonify(err.to_dict()), err.status

    @app.errorhandler(404)
    def not_found(err):
        return jsonify({"success": False, "error": "NotFound",
                        "message": "Route not found"}), 404

    @app.errorhandler(403)
    def forbidden(err):
        return jsonify({"success": False, "error": "Forbidden",
                        "message": "You are not allowed to do this"}), 403

def create_app(config_object="config.Config"):
    app = Flask(__name__)
    app.config.from_object(config_object)
    configure_logging(app)

    db.init_app(app)
    migrate.init_app(app, db)
    login_manager.init_app(app)

    from . import models
    from .models import User

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({"success": False, "error": "Unauthorized",
                        "message": "Login required"}), 401

    from .blueprints.auth import bp as auth_bp
    from .blueprints.admin import bp as admin_bp
    from .blueprints.teacher import bp as teacher_bp
    from .blueprints.student import bp as student_bp
    app.register_blueprint(auth_bp, url_prefix="/auth")
    app.register_blueprint(admin_bp, url_prefix="/admin")
    app.register_blueprint(teacher_bp, url_prefix="/teacher")
    app.register_blueprint(student_bp, url_prefix="/student")
    register_error_handlers(app)

    return app
