import os
import logging
import argparse
import traceback
from flask import Flask, jsonify
from flask_migrate import Migrate
from werkzeug.exceptions import HTTPException

# Import db from models
from models import db
# Import database migration function
from db_migrations import check_and_update_database
from errors import AttainmentError

# Configure logging level from environment variable
def configure_logging():
    """Configure logging based on environment settings"""
    log_level = os.environ.get('LOG_LEVEL', 'WARNING').upper()

    # Map string levels to logging constants
    level_mapping = {
        'DEBUG': logging.DEBUG,
        'INFO': logging.INFO,
        'WARNING': logging.WARNING,
        'ERROR': logging.ERROR,
        'CRITICAL': logging.CRITICAL
    }

    actual_level = level_mapping.get(log_level, logging.WARNING)

    # Setup logging
    logging.basicConfig(
        filename=os.environ.get('LOG_FILE', 'app.log'),
        level=actual_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

    return actual_level

def _env_float(name, default):
    value = os.environ.get(name)
    if value in (None, ''):
        return default
    try:
        return float(value)
    except ValueError:
        logging.warning(f"Ignoring invalid {name}={value!r}, using {default}")
        return default

def create_app(test_config=None, policy=None):
    app = Flask(__name__)
    app.json.sort_keys = False

    # Get the absolute path to the current directory
    base_dir = os.path.abspath(os.path.dirname(__file__))

    # Configuration
    app.config['SECRET_KEY'] = os.environ.get('SECRET_KEY', 'dev_key_for_local_use')
    app.config['SQLALCHEMY_DATABASE_URI'] = os.environ.get(
        'DATABASE_URL', f'sqlite:///{os.path.join(base_dir, "instance", "obe_attainment.db")}')
    app.config['SQLALCHEMY_TRACK_MODIFICATIONS'] = False
    # Attainment defaults; routes pass these into the calculators explicitly
    app.config['DEFAULT_DIRECT_WEIGHT'] = _env_float('DEFAULT_DIRECT_WEIGHT', 0.8)
    app.config['DEFAULT_INDIRECT_WEIGHT'] = _env_float('DEFAULT_INDIRECT_WEIGHT', 0.2)
    app.config['DEFAULT_INDIRECT_ATTAINMENT'] = _env_float('DEFAULT_INDIRECT_ATTAINMENT', 2.0)
    app.config['DEFAULT_PO_TARGET_LEVEL'] = _env_float('DEFAULT_PO_TARGET_LEVEL', 2.0)
    app.config['MAX_IMPORT_ROWS'] = int(_env_float('MAX_IMPORT_ROWS', 5000))

    if test_config:
        app.config.update(test_config)

    # Ensure instance folder exists for the default SQLite database
    os.makedirs(os.path.join(base_dir, 'instance'), exist_ok=True)

    # Configure logging
    log_level = configure_logging()

    # Log the current configuration
    if log_level <= logging.INFO:
        logging.info(f"Application started with log level: {logging.getLevelName(log_level)}")

    # Initialize extensions with app
    db.init_app(app)
    Migrate(app, db)

    # The access policy is injected so deployments can swap role rules without touching the engine
    from attainment_repository import AttainmentRepository
    from permissions import AttainmentPolicy
    app.extensions['attainment_policy'] = policy or AttainmentPolicy(lambda: AttainmentRepository(db.session))

    # Register blueprints
    from routes.attainment_routes import attainment_bp
    from routes.po_routes import po_bp
    from routes.mark_routes import mark_bp

    app.register_blueprint(attainment_bp)
    app.register_blueprint(po_bp)
    app.register_blueprint(mark_bp)

    # Create tables if they don't exist
    with app.app_context():
        db.create_all()
        # Run database migrations to update schema for existing installations
        check_and_update_database(app)

    @app.route('/health')
    def health():
        return jsonify({'success': True, 'status': 'ok'})

    @app.errorhandler(AttainmentError)
    def handle_attainment_error(e):
        if e.status_code >= 500:
            logging.error(f"{e.kind}: {e.message}")
        return jsonify(e.to_dict()), e.status_code

    @app.errorhandler(HTTPException)
    def handle_http_exception(e):
        return jsonify({
            'success': False,
            'kind': e.name.lower().replace(' ', '_'),
            'message': e.description
        }), e.code

    @app.errorhandler(Exception)
    def handle_uncaught_exception(e):
        # Get detailed error information
        error_traceback = traceback.format_exc()
        logging.error(f"Uncaught exception: {str(e)}\n{error_traceback}")
        db.session.rollback()
        return jsonify({
            'success': False,
            'kind': 'internal_error',
            'message': 'Internal server error'
        }), 500

    return app

if __name__ == '__main__':
    # Parse command line arguments
    parser = argparse.ArgumentParser(description='OBE Attainment Engine')
    parser.add_argument('port', nargs='?', type=int, default=5000, help='Port to run the application on')
    parser.add_argument('--debug', action='store_true', help='Run with the Flask debugger and reloader')
    args = parser.parse_args()

    app = create_app()
    port = args.port

    # Print the local URL
    print("=" * 70)
    print(f"Server started! API available at: http://localhost:{port}/api")
    print("=" * 70)

    # Run the application
    app.run(debug=args.debug, port=port)
