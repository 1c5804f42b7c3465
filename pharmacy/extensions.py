# /pharmacy/extensions.py
"""Flask extensions, created unbound and initialised in create_app()."""
from flask_sqlalchemy import SQLAlchemy
from flask_bcrypt import Bcrypt
from flask_migrate import Migrate
from flask_jwt_extended import JWTManager
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from flask_cors import CORS

db = SQLAlchemy()
bcrypt = Bcrypt()
# `flask db init` / `flask db migrate` generate the migrations directory
migrate = Migrate()
jwt = JWTManager()
# Storage comes from RATELIMIT_STORAGE_URI; only auth and SMS routes carry limits
limiter = Limiter(key_func=get_remote_address)
cors = CORS()
