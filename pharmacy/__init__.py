from flask import Flask
from pharmacy.extensions import db, bcrypt, migrate, jwt, limiter, cors
from pharmacy.utils.encryption_util import encryptor
from pharmacy.utils.error_handlers import register_error_handlers
from pharmacy.accounting.status_engine import SystemClock
from pharmacy.commands import register_commands
from config import config


def create_app(config_name='default'):
    app = Flask(__name__)
    config_class = config[config_name]
    app.config.from_object(config_class)

    # Initialize extensions
    db.init_app(app)
    bcrypt.init_app(app)
    migrate.init_app(app, db)
    jwt.init_app(app)
    limiter.init_app(app)
    cors.init_app(
        app,
        origins=app.config['ALLOWED_ORIGINS'],
        supports_credentials=True,
        allow_headers=['Content-Type', 'Authorization', 'X-Requested-With'],
        methods=['GET', 'POST', 'PUT', 'DELETE', 'OPTIONS']
    )

    encryptor.init_app(app)

    # Every "today" used for account status comes from this clock
    app.extensions['account_clock'] = SystemClock(app.config['ACCOUNT_TIMEZONE'])

    config_class.init_app(app)

    # Register blueprints
    from pharmacy.api import api_bp
    app.register_blueprint(api_bp, url_prefix='/api')

    register_error_handlers(app)
    register_commands(app)

    @jwt.token_in_blocklist_loader
    def check_if_token_revoked(jwt_header, jwt_payload):
        from pharmacy.models.system_models import RevokedToken
        return RevokedToken.query.filter_by(jti=jwt_payload['jti']).first() is not None

    return app
