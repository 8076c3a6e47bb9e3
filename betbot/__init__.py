# betbot/__init__.py
import os
from flask import Flask
from flask_sqlalchemy import SQLAlchemy
from flask_migrate import Migrate
from flask_restful import Api
from flask_jwt_extended import JWTManager
from sqlalchemy import event
from betbot.config import config_by_name

import logging
log = logging.getLogger(__name__)

db = SQLAlchemy()
migrate = Migrate()
jwt = JWTManager()


def _enable_sqlite_savepoints(engine):
    """
    pysqlite defers BEGIN until the first DML statement, which turns a leading
    SAVEPOINT into the outer transaction. Emit BEGIN ourselves so per-bet
    savepoints nest inside the settlement transaction.
    """
    @event.listens_for(engine, "connect")
    def _do_connect(dbapi_connection, connection_record):
        dbapi_connection.isolation_level = None

    @event.listens_for(engine, "begin")
    def _do_begin(conn):
        conn.exec_driver_sql("BEGIN")


def create_app(config_name=None):
    if config_name is None:
        config_name = os.getenv('FLASK_ENV', 'development')

    app = Flask(__name__)
    app.config.from_object(config_by_name[config_name])
    app.logger.info(f"--- Using database URI: {app.config.get('SQLALCHEMY_DATABASE_URI')} ---")

    # --- Initialize extensions with the app object ---
    db.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)

    if str(app.config.get('SQLALCHEMY_DATABASE_URI', '')).startswith('sqlite'):
        with app.app_context():
            _enable_sqlite_savepoints(db.engine)

    mode = app.config.get('BETTING_MODE')
    if mode not in ('simple', 'extended'):
        raise ValueError(f"Unknown BETTING_MODE '{mode}'. Use 'simple' or 'extended'.")
    app.logger.info(f"Betting mode: {mode}")

    api = Api(app)
    from betbot.api.routes import initialize_routes
    initialize_routes(app, api)
    app.logger.info("--- Flask-RESTful API Routes Initialized ---")

    from betbot.cli import register_commands
    register_commands(app)

    if app.debug:
        app.logger.info("--- Final Registered Routes (app.url_map) ---")
        for rule in app.url_map.iter_rules():
            app.logger.info(f"Endpoint: {rule.endpoint}, Methods: {list(rule.methods)}, Path: {rule.rule}")
        app.logger.info("----------------------------------------------------------")

    app.logger.info("--- App Creation Complete ---")

    return app
