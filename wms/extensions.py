"""
Flask extension singletons for the restoration portal.

- db: SQLAlchemy (users, audit log, JSON documents for monuments/projects)
- migrate: Alembic migrations via `flask db ...`
- login_manager: session login for mobile/OTP users
- csrf: token check on mutating requests (header X-CSRFToken for JSON clients)

They are bound to the application in create_app() so that modules can import
them without importing the app itself.
"""

from flask_login import LoginManager
from flask_migrate import Migrate
from flask_sqlalchemy import SQLAlchemy
from flask_wtf import CSRFProtect

db = SQLAlchemy()
migrate = Migrate()
login_manager = LoginManager()
csrf = CSRFProtect()
